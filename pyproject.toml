[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "oslab"
version = "0.1.0"
description = "A small tracker-based peer-to-peer file sharing system, with thread, queue and socket utilities"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "p2p",
    "file-sharing",
    "tracker",
    "sockets",
    "threads",
    "work-queue",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Education",
    "Intended Audience :: Developers",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Communications :: File Sharing",
    "Topic :: Education",
    "Topic :: System :: Networking",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
oslab-tracker = "oslab.tracker:main"
oslab-seeder = "oslab.peer:seeder_main"
oslab-peer = "oslab.peer:peer_main"
oslab-baseconv = "oslab.arith:main"
oslab-workserver = "oslab.workserver:main"
oslab-echoserver = "oslab.echoserver:main"

[tool.hatch.build.targets.wheel]
packages = ["oslab"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
