[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "fluxkube"
version = "0.1.0"
description = "Kubernetes manifest handling: parse resources, rewrite policy annotations, sync through kubectl and save exported configuration"
requires-python = ">=3.10"
dependencies = [
    "pyyaml",
]
keywords = ["kubernetes", "deployment", "manifests", "yaml", "gitops", "kubectl"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Software Distribution",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["fluxkube"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
