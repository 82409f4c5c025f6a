[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "edgeboot"
version = "0.1.0"
description = "Configuration loading for services: YAML files, environment overrides, configuration provider handling and Writable-change processing"
requires-python = ">=3.10"
keywords = ["bootstrap", "configuration", "environment", "yaml", "microservices"]
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
    "Topic :: Software Development :: Libraries :: Application Frameworks",
]
dependencies = [
    "pyyaml",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["edgeboot"]

[tool.pytest.ini_options]
addopts = "-ra"
