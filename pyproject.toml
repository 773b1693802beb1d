[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "netroute"
version = "0.1.0"
description = "Building blocks for HTTP clients and servers: requests, responses, OAuth credentials, JSON Web Tokens, form uploads and MJPEG video streaming."
requires-python = ">=3.10"
dependencies = [
    "cryptography",
    "pillow",
]
keywords = [
    "http",
    "web",
    "client",
    "server",
    "oauth",
    "jwt",
    "multipart",
    "mjpeg",
    "rest",
]
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
    "Topic :: Internet :: WWW/HTTP",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = [
    "pytest",
    "cryptography",
    "pillow",
]

[tool.hatch.build.targets.wheel]
packages = ["netroute"]

[tool.hatch.build.targets.sdist]
include = [
    "netroute",
    "tests",
    "pyproject.toml",
    "README.md",
]

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
