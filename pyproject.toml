[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "udpfilters"
version = "0.1.0"
description = "Composable packet filters for a UDP proxy: firewall, rate limiting, load balancing, byte concatenation, timestamps and more."
requires-python = ">=3.10"
dependencies = []
keywords = ["udp", "proxy", "filters", "firewall", "rate-limit", "load-balancer"]
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
    "Topic :: System :: Networking",
    "Typing :: Typed",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["udpfilters"]

[tool.pytest.ini_options]
addopts = "-ra"
