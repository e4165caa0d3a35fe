[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "pyrhouse"
version = "1.0.0"
description = "Warehouse equipment web service: storage locations, item categories, user accounts and a service desk"
requires-python = ">=3.10"
dependencies = [
    "flask",
    "sqlalchemy",
]
keywords = ["warehouse", "inventory", "service desk", "flask", "wsgi", "locations"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Web Environment",
    "Framework :: Flask",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: WWW/HTTP :: WSGI :: Application",
    "Topic :: Office/Business",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
pyrhouse = "pyrhouse.app:main"

[tool.hatch.build.targets.wheel]
packages = ["pyrhouse"]

[tool.pytest.ini_options]
addopts = "-ra"
