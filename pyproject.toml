[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "laemu"
version = "0.1.0"
description = "A LoongArch userspace emulator core: registers, guest memory, threaded bytecodes and simulation loops"
requires-python = ">=3.10"
dependencies = []
keywords = ["loongarch", "emulator", "la64", "la32", "bytecode", "simulator"]
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
    "Topic :: Software Development :: Interpreters",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["laemu"]

[tool.hatch.build.targets.sdist]
include = ["laemu", "tests", "pyproject.toml"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]
