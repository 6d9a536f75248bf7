[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "hybridsim"
version = "0.1.0"
description = "Console simulation of a hybrid car: a management unit sharing power between an electric and a combustion engine"
requires-python = ">=3.10"
dependencies = []
keywords = ["hybrid", "vehicle", "simulation", "engine", "battery", "powertrain"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Education",
    "Intended Audience :: Science/Research",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering :: Physics",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
hybridsim = "hybridsim.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["hybridsim"]

[tool.pytest.ini_options]
addopts = "-ra"
