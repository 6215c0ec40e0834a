[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "lnms"
version = "0.1.0"
description = "Lightweight network monitoring: an SSH metric poller and a time-series report database connected over ZeroMQ"
requires-python = ">=3.10"
keywords = ["monitoring", "metrics", "time-series", "ssh", "zeromq", "poller"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Networking :: Monitoring",
]
dependencies = [
    "pyzmq",
    "msgpack",
    "paramiko",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
lnms-reportdb = "lnms.reportdb.app:main"
lnms-poller = "lnms.poller.app:main"

[tool.hatch.build.targets.wheel]
packages = ["lnms"]

[tool.pytest.ini_options]
addopts = "-ra"
