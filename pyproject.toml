[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "powervs-csi"
version = "0.0.1"
description = "Container Storage Interface controller logic, fibre channel disk discovery and mount helpers for Power Systems Virtual Server block volumes"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "csi",
    "container-storage-interface",
    "kubernetes",
    "block-storage",
    "fibre-channel",
    "multipath",
    "powervs",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: System Administrators",
    "Intended Audience :: Developers",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Filesystems",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["powervs_csi"]

[tool.hatch.build.targets.sdist]
include = ["powervs_csi", "tests"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
