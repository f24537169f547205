[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "mapsjobs"
version = "1.8.2"
description = "Job model, SQLite storage and a WSGI/SSE server for managing map scraping jobs"
requires-python = ">=3.10"
dependencies = []
keywords = ["jobs", "http", "wsgi", "server-sent-events", "sqlite", "scraping"]
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
    "Topic :: Internet :: WWW/HTTP :: HTTP Servers",
    "Topic :: Internet :: WWW/HTTP :: WSGI :: Application",
    "Topic :: Database",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
mapsjobs-server = "mapsjobs.server:main"

[tool.hatch.build.targets.wheel]
packages = ["mapsjobs"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
