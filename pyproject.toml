[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "agentvec"
version = "0.2.0"
description = "Building blocks for an embedded vector store: slot-based vector files, record metadata, slot freelist and vector quantization"
requires-python = ">=3.10"
keywords = ["vector", "database", "embedding", "quantization", "storage"]
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
    "Topic :: Database :: Database Engines/Servers",
    "Topic :: Scientific/Engineering :: Information Analysis",
]
dependencies = [
    "numpy",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["agentvec"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
