[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "expirecache"
version = "3.0.0"
description = "Thread-safe in-memory key/value cache with per-item expiration, a background janitor and sharding."
requires-python = ">=3.10"
dependencies = []
keywords = ["cache", "ttl", "expiration", "in-memory", "key-value", "sharded"]
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
    "Topic :: Software Development :: Libraries :: Python Modules",
    "Typing :: Typed",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["expirecache"]

[tool.hatch.build.targets.sdist]
include = ["expirecache", "tests", "README.md"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
