from pathlib import Path

from setuptools import find_packages, setup

with open("gridwarp/version.py") as file:
    version_info = dict(
        line.replace(" ", "").replace('"', "").strip().split("=") for line in file
    )

with open("requirements.txt") as file:
    install_requires = file.read().splitlines()

tests_require = [
    "pytest",
    "pytest-cov",
]

setup(
    name="gridwarp",
    version=version_info["__version__"],
    description="Resampling and reprojection of multi-band raster coverages between grid geometries and coordinate reference systems.",
    long_description=(Path(__file__).parent / "README.md").read_text(),
    long_description_content_type="text/markdown",
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
    ],
    packages=find_packages(include=["gridwarp", "gridwarp.*"]),
    include_package_data=True,
    python_requires=">=3.8",
    install_requires=install_requires,
    tests_require=tests_require,
    extras_require={"test": tests_require},
)
