[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "wkxy"
version = "0.1.0"
description = "Encode and decode CAN / CAN FD frames from a JSON signal matrix and send them periodically over SocketCAN"
requires-python = ">=3.10"
dependencies = []
keywords = ["can", "canfd", "socketcan", "signals", "pdu", "automotive"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Embedded Systems :: Controller Area Network (CAN)",
]

[project.optional-dependencies]
test = ["pytest", "pytest-asyncio"]

[project.scripts]
wkxy = "wkxy.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["wkxy"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
