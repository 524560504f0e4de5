[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "feedbackctl"
version = "0.1.0"
description = "Quadratic programming, PID control and active set invariance filtering for feedback control"
requires-python = ">=3.10"
keywords = ["control", "quadratic programming", "admm", "pid", "control barrier function", "optimization"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Science/Research",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: Scientific/Engineering :: Mathematics",
]
dependencies = [
    "numpy",
    "scipy",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["feedbackctl"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
