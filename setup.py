#!/usr/bin/env python3
"""Setup script for ssrloader."""

import pathlib
from setuptools import setup, find_packages

here = pathlib.Path(__file__).parent

# Read version from VERSION file
with open(here / "VERSION", 'r', encoding='utf-8') as f:
    version = f.read().strip()

# Read README for long description
with open(here / "README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

# Read requirements
with open(here / "requirements.txt", "r", encoding="utf-8") as fh:
    requirements = [
        line.strip()
        for line in fh
        if line.strip() and not line.startswith("#") and not line.startswith("-")
    ]

setup(
    name="ssrloader",
    version=version,
    description="SSR dev server: on-demand transformed Python modules with live bindings",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(include=["ssrloader", "ssrloader.*"]),
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Internet :: WWW/HTTP :: Dynamic Content",
        "Topic :: Software Development :: Build Tools",
    ],
    python_requires=">=3.10",
    install_requires=requirements,
    extras_require={
        "test": [
            "pytest>=7.0",
            "pytest-asyncio>=0.21",
            "httpx>=0.24",
        ],
    },
    entry_points={
        "console_scripts": [
            "ssrloader=ssrloader.cli:main",
        ],
    },
    include_package_data=True,
)
