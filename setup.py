#!/usr/bin/env python3
"""
Setup configuration for chester
Track catalog and audio fetcher for a Discord music bot
"""

from setuptools import setup, find_packages

# Read README for long description
with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

# Core requirements (always installed)
core_requirements = [
    "yt-dlp>=2023.12.30",
    "click>=8.1.7",
    "rich-click>=1.7.0",
    "rich>=13.7.0",
    "pyyaml>=6.0.1",
    "tqdm>=4.66.1",
]

setup(
    name="chester",
    version="0.4.0",
    author="chester",
    description="Track metadata catalog and yt-dlp audio fetcher for a Discord music bot",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(include=["chester", "chester.*"]),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Intended Audience :: End Users/Desktop",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Multimedia :: Sound/Audio",
    ],
    python_requires=">=3.10",
    install_requires=core_requirements,
    extras_require={
        "dev": [
            "pytest>=7.4.3",
        ],
    },
    entry_points={
        "console_scripts": [
            "chester=chester.cli:main",
        ],
    },
    keywords="discord music bot sqlite youtube yt-dlp catalog cli",
)
