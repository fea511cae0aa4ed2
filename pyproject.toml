[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "procompose"
version = "0.1.0"
description = "HTTP control API, command-line client and building blocks for a process scheduler and orchestrator"
requires-python = ">=3.10"
keywords = ["process", "orchestrator", "scheduler", "supervisor", "compose"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Systems Administration",
]
dependencies = [
    "pyyaml",
    "platformdirs",
    "pillow",
    "flask",
    "websocket-client",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
procompose = "procompose.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["procompose"]

[tool.pytest.ini_options]
addopts = "-ra"
