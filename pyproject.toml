[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "gpunode"
version = "0.14.4"
description = "GPU node labelling, MIG discovery and device-allocation planning for Kubernetes clusters"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "kubernetes",
    "gpu",
    "mig",
    "node-labels",
    "device-plugin",
    "cdi",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: System Administrators",
    "Intended Audience :: Developers",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Clustering",
    "Typing :: Typed",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["gpunode"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
