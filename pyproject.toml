[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "sunkv"
version = "1.0.0"
description = "RESP protocol codec and a reactor-style TCP networking core for a key-value server"
requires-python = ">=3.10"
dependencies = []
keywords = ["resp", "redis", "key-value", "reactor", "event-loop", "tcp", "networking"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Database :: Database Engines/Servers",
    "Topic :: System :: Networking",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["sunkv"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
