[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "yslog"
version = "0.1.0"
description = "Row types, shard iterators and consumer-group storage for a sharded blockchain event log kept in a CQL store"
requires-python = ">=3.10"
keywords = ["scylladb", "cassandra", "event-log", "sharding", "geyser", "solana"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Framework :: AsyncIO",
    "Topic :: Database",
]
dependencies = []

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[tool.hatch.build.targets.wheel]
packages = ["yslog"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
