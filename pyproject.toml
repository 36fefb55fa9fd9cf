[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "tsparquet"
version = "0.1.0"
description = "Search and materialization of time series stored in paged, columnar label and chunk tables"
requires-python = ">=3.10"
dependencies = []
keywords = ["time series", "columnar", "labels", "search", "row ranges"]
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
    "Topic :: Database",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["tsparquet"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
