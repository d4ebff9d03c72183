from setuptools import setup, find_packages


setup(
    name="slar",
    version="0.1",
    packages=find_packages(include=["slar", "slar.*"]),
    description="Single-file lazy archives: named blobs plus metadata tags, extracted without loading entry content during the scan.",
    author="vercingetorx",
    install_requires=[],
    entry_points={
        "console_scripts": [
            "slar=slar.cli:main",
        ]
    },
)
