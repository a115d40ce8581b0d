[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "webhook-tester"
version = "0.1.0"
description = "WSGI application and command line for capturing incoming webhook requests and inspecting them through a JSON API"
requires-python = ">=3.10"
keywords = ["webhook", "http", "testing", "debugging", "wsgi"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Environment :: Web Environment",
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
    "Topic :: Software Development :: Testing",
]
dependencies = [
    "werkzeug",
    "click",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
webhook-tester = "webhook_tester.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["webhook_tester"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
