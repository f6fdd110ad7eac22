[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "qdbhost"
version = "0.1.0"
description = "Host-side building blocks for a USB debug bridge: subnet allocation, host logging, device services and USB device tracking"
requires-python = ">=3.10"
dependencies = [
    "psutil",
]
keywords = ["usb", "debug bridge", "embedded", "device", "subnet", "network configuration"]
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
    "Topic :: Software Development :: Embedded Systems",
    "Topic :: System :: Networking",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["qdbhost"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]
