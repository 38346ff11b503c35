[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "powerrune"
version = "0.1.0"
description = "Power rune detection, pose solving and rotation prediction for aiming systems"
requires-python = ">=3.10"
keywords = ["computer vision", "pose estimation", "curve fitting", "robotics", "aiming"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Science/Research",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering :: Image Recognition",
]
dependencies = [
    "numpy",
    "scipy",
    "pyyaml",
    "imageio",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
powerrune = "powerrune.power_rune:main"

[tool.hatch.build.targets.wheel]
packages = ["powerrune"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
ignore_missing_imports = true
