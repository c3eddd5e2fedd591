from pathlib import Path

from setuptools import find_namespace_packages, setup

# Load packages from requirements.txt
BASE_DIR = Path(__file__).parent
with open(Path(BASE_DIR, "requirements.txt")) as file:
    required_packages = [ln.strip() for ln in file.readlines() if ln.strip()]

# Define our package
setup(
    name="chronicles-core",
    version="1.0.0",
    description="Adaptive lesson progression, assessment and durable progress store for a story-driven learning game",
    python_requires=">=3.10",
    packages=find_namespace_packages(include=["chronicles*"]),
    package_data={"chronicles": ["schemas/*.json", "data/*.json"]},
    include_package_data=True,
    install_requires=required_packages,
    extras_require={
        "dev": ["pytest>=7.0"],
    },
)
