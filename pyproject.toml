[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "netgateway"
version = "0.1.0"
description = "Reconcile networking Ingress resources into Gateway API HTTPRoutes"
requires-python = ">=3.10"
keywords = ["ingress", "gateway-api", "httproute", "reconciler", "networking"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: System :: Networking",
]
dependencies = [
    "pyyaml",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["netgateway"]

[tool.pytest.ini_options]
addopts = "-ra"
