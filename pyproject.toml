[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "resmetrics"
version = "0.1.0"
description = "Resource metrics for cluster nodes and pods: kubelet scraping, Prometheus text decoding and a metrics API layer"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "metrics",
    "monitoring",
    "kubelet",
    "prometheus",
    "resource-usage",
    "cluster",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Monitoring",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[tool.hatch.build.targets.wheel]
packages = ["resmetrics"]

[tool.hatch.build.targets.sdist]
include = [
    "resmetrics",
    "tests",
]

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
warn_redundant_casts = true
check_untyped_defs = true
