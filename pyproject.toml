[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "cronbatch"
version = "0.1.0"
description = "Cron-scheduled batch jobs: versioned CronJob types, admission checks, an in-memory store and a reconciler"
requires-python = ">=3.11"
dependencies = []
keywords = ["cron", "cronjob", "controller", "scheduler", "batch", "webhook", "reconciler"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Systems Administration",
    "Typing :: Typed",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
cronbatch = "cronbatch.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["cronbatch"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py311"

[tool.mypy]
python_version = "3.11"
warn_unused_ignores = true
