from setuptools import setup, find_packages

setup(
    name="ohmlab",
    version="0.1.0",
    description="Schematic graph editor core and DC nodal-analysis solver",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "numpy",
        "networkx"
    ],
    extras_require={
        "test": ["pytest"],
    },
    python_requires=">=3.8",
)
