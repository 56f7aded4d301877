[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "libllama"
version = "0.1.0"
description = "Building blocks for a 3DS hardware emulator: memory map, I/O register devices, timers, crypto engines and message routing"
requires-python = ">=3.10"
dependencies = []
keywords = ["emulator", "3ds", "arm9", "arm11", "io-registers", "mmio"]
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
    "Topic :: System :: Emulators",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["libllama"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
