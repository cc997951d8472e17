[build-system]
requires = ["setuptools>=61"]
build-backend = "setuptools.build_meta"

[project]
name = "tcpnat"
version = "0.1.0"
description = "A small two-sided TCP network address translator between two subnets"
requires-python = ">=3.10"
dependencies = []
keywords = ["nat", "tcp", "ipv4", "networking", "raw-sockets", "checksum"]
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
    "Topic :: System :: Networking",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
tcpnat = "tcpnat.nat:main"

[tool.setuptools]
packages = ["tcpnat"]

[tool.pytest.ini_options]
addopts = "-ra"
