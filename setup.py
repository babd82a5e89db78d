#!/usr/bin/env python3
"""
TomoBlob installation script
"""

from setuptools import setup, find_packages
import os
import re

# Read README file
def read_readme():
    with open("README.md", "r", encoding="utf-8") as fh:
        return fh.read()

# Read requirements file
def read_requirements():
    requirements = []
    if os.path.exists("requirements.txt"):
        with open("requirements.txt", "r", encoding="utf-8") as fh:
            requirements = [line.strip() for line in fh if line.strip() and not line.startswith("#")]
    return requirements

# Read version from __init__.py
def get_version():
    init_file = os.path.join(os.path.dirname(__file__), "tomoblob", "__init__.py")
    with open(init_file, "r", encoding="utf-8") as fh:
        content = fh.read()
    version_match = re.search(r'^__version__ = ["\']([^"\']*)["\']', content, re.MULTILINE)
    if version_match:
        return version_match.group(1)
    raise RuntimeError("Unable to find version string in tomoblob/__init__.py")

setup(
    name="tomoblob",
    version=get_version(),
    author="TomoBlob Team",
    author_email="contact@tomoblob.org",
    description="Spherical-harmonics membrane surface fitting of blobs in cryo-ET tilt series",
    long_description=read_readme(),
    long_description_content_type="text/markdown",
    url="https://github.com/tomoblob/tomoblob",
    packages=find_packages(include=["tomoblob", "tomoblob.*"]),
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Science/Research",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Topic :: Scientific/Engineering :: Bio-Informatics",
        "Topic :: Scientific/Engineering :: Image Processing",
    ],
    python_requires=">=3.9",
    install_requires=read_requirements(),
    extras_require={
        "dev": [
            "pytest>=6.0",
            "pytest-cov",
            "black",
            "flake8",
            "mypy",
        ],
    },
    entry_points={
        "console_scripts": [
            "tomoblob=tomoblob.cli.main:main",
        ],
    },
    include_package_data=True,
    zip_safe=False,
)
