[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "vslam"
version = "0.1.0"
description = "Visual odometry and bundle adjustment building blocks on NumPy: ORB descriptors, PnP, ICP, triangulation, optical flow, direct method and BAL bundle adjustment"
requires-python = ">=3.10"
keywords = [
    "slam",
    "visual-odometry",
    "bundle-adjustment",
    "optical-flow",
    "orb",
    "icp",
    "pnp",
    "computer-vision",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Science/Research",
    "Intended Audience :: Education",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: Scientific/Engineering :: Image Processing",
]
dependencies = [
    "numpy",
    "scipy",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
vslam-ba = "vslam.bundle:main"

[tool.hatch.build.targets.wheel]
packages = ["vslam"]

[tool.pytest.ini_options]
addopts = "-ra"
