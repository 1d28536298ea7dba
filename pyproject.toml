[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "cmcp"
version = "0.1.0"
description = "Building blocks for a code-mode MCP proxy: server config, tool catalog, config import and upstream clients"
requires-python = ">=3.11"
keywords = ["mcp", "model-context-protocol", "proxy", "aggregator", "tools", "agents"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: Proxy Servers",
    "Topic :: Software Development :: Libraries :: Python Modules",
]
dependencies = [
    "tomli-w>=1.0",
    "httpx>=0.25",
]

[project.optional-dependencies]
test = [
    "pytest>=7.0",
]

[tool.hatch.build.targets.wheel]
packages = ["cmcp"]

[tool.hatch.build.targets.sdist]
include = ["cmcp", "tests"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]

[tool.ruff]
line-length = 100
target-version = "py311"

[tool.ruff.lint]
select = ["E", "F", "I", "B", "UP"]

[tool.mypy]
python_version = "3.11"
warn_unused_ignores = true
warn_redundant_casts = true
