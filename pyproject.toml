[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "mixinkit"
version = "0.1.0"
description = "Peer message encoding, stream framing, routing and sync helpers, and a JSON-RPC client for a decentralized asset-transfer kernel network."
requires-python = ">=3.10"
dependencies = []
keywords = ["p2p", "consensus", "rpc", "framing", "relay", "distributed"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: System :: Distributed Computing",
    "Topic :: System :: Networking",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["mixinkit"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
