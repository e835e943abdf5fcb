#!/usr/bin/env python3
"""
Setup script for the topictrends package.
"""

from setuptools import setup, find_packages
import os

HERE = os.path.abspath(os.path.dirname(__file__))


def parse_requirements(filename):
    """Parse a pip requirements file into a list of install_requires."""
    path = os.path.join(HERE, filename)
    if not os.path.exists(path):
        return []
    with open(path, "r") as f:
        lines = f.readlines()
    return [
        line.strip()
        for line in lines
        if line.strip() and not line.strip().startswith("#")
    ]


setup(
    name="topictrends",
    version="1.0.0",
    author="topictrends contributors",
    description="LDA topic modeling and topic trends over publication years for text corpora",
    packages=find_packages(exclude=["tests", "tests.*"]),
    package_data={"topictrends": ["config.yaml"]},
    include_package_data=True,
    zip_safe=False,
    install_requires=parse_requirements("pip_requirements.txt"),
    extras_require={
        "test": ["pytest>=7.0"],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.8",
)
