[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "caroplay"
version = "0.1.0"
description = "Networked Caro (five-in-a-row) game server and client over a simple text protocol"
requires-python = ">=3.10"
dependencies = []
keywords = ["caro", "gomoku", "five-in-a-row", "board game", "game server", "tcp"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Environment :: No Input/Output (Daemon)",
    "Intended Audience :: Developers",
    "Intended Audience :: End Users/Desktop",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Games/Entertainment :: Board Games",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
caroplay-server = "caroplay.server:main"

[tool.hatch.build.targets.wheel]
packages = ["caroplay"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]
