[build-system]
requires = ["setuptools>=61"]
build-backend = "setuptools.build_meta"

[project]
name = "task_scheduler"
version = "0.1.0"
description = "Cron-style task scheduler with plugins, an AHR999-driven Bitcoin auto-buy task and a file-backed push notification layer"
requires-python = ">=3.10"
keywords = [
    "scheduler",
    "cron",
    "plugins",
    "bitcoin",
    "dca",
    "ahr999",
    "binance",
    "notifications",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: End Users/Desktop",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Office/Business :: Financial :: Investment",
    "Topic :: Office/Business :: Scheduling",
]
dependencies = [
    "pyyaml",
    "requests",
]

[project.optional-dependencies]
test = [
    "pytest",
    "responses",
]

[project.scripts]
task-scheduler = "task_scheduler.cli:main"

[tool.setuptools.packages.find]
include = ["task_scheduler*"]

[tool.pytest.ini_options]
addopts = "-ra"
