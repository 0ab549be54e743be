[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "scanfit"
version = "0.1.0"
description = "Fit superellipse and line models to 2D laser scans, track them with Kalman filters and associate new beams"
requires-python = ">=3.10"
keywords = ["lidar", "laser scan", "ekf", "superellipse", "line fitting", "least squares", "mapping"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Science/Research",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering",
    "Topic :: Scientific/Engineering :: Mathematics",
]
dependencies = [
    "numpy",
    "scipy",
    "matplotlib",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["scanfit"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
