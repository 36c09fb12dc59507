[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "xraykit"
version = "0.1.0"
description = "Convert proxy share links, Clash.Meta YAML and Xray JSON configurations, and find the geo data files a configuration refers to"
requires-python = ">=3.10"
dependencies = [
    "pyyaml",
]
keywords = ["xray", "proxy", "vmess", "vless", "trojan", "shadowsocks", "socks", "clash", "share-link"]
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
    "Topic :: Internet :: Proxy Servers",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["xraykit"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
