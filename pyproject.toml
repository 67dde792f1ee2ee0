[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "chaindaemon"
version = "0.1.0"
description = "Query clients, transaction broadcasting and deployment state for Cosmos SDK chains"
requires-python = ">=3.10"
keywords = ["cosmos", "cosmwasm", "blockchain", "grpc", "ibc", "deployment"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Framework :: AsyncIO",
    "Topic :: Software Development :: Libraries :: Python Modules",
]
dependencies = []

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[tool.hatch.build.targets.wheel]
packages = ["chaindaemon"]

[tool.pytest.ini_options]
addopts = "-ra"
