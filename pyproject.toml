[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "durableq"
version = "0.1.0"
description = "Durable queues backed by SQLite, with acknowledgement, retries and dead letter queues."
requires-python = ">=3.10"
dependencies = []
keywords = ["queue", "sqlite", "durable", "persistent", "ack", "dead-letter"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Database",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["durableq"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
