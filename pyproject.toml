[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "fasim"
version = "1.0.0"
description = "Factory Automation Simulator: a REST API and SQLite storage for items, facilities and production pipelines"
requires-python = ">=3.10"
keywords = ["factory", "automation", "simulation", "manufacturing", "rest", "sqlite", "flask"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Environment :: Web Environment",
    "Framework :: Flask",
    "Intended Audience :: Developers",
    "Intended Audience :: Manufacturing",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: WWW/HTTP :: HTTP Servers",
    "Topic :: Database",
    "Topic :: Scientific/Engineering",
]
dependencies = [
    "flask",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
fasim = "fasim.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["fasim"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
