#!/usr/bin/env python3
"""
Setup configuration for Spot-Radio
Personalized Spotify radio queues played back through YouTube Music
"""

from setuptools import setup, find_packages

# Read README for long description
with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

# Core requirements (always installed)
core_requirements = [
    "ytmusicapi>=1.3.2",
    "rich-click>=1.7.0",
    "rich>=13.0.0",
    "pyyaml>=6.0.1",
    "tqdm>=4.66.1",
    "colorama>=0.4.6",
    "python-dotenv>=1.0.0",
    "aiohttp>=3.9.1",
    "asyncio-throttle>=1.0.2",
]

setup(
    name="spot-radio",
    version="0.4.0",
    author="Spot-Radio Team",
    author_email="contact@spot-radio.dev",
    description="Turn your Spotify taste into YouTube Music radio queues",
    long_description=long_description,
    long_description_content_type="text/markdown",
    url="https://github.com/verryx-02/spot-radio",
    packages=find_packages(exclude=["tests", "tests.*"]),
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
        "Topic :: Internet :: WWW/HTTP :: Dynamic Content",
    ],
    python_requires=">=3.10",
    install_requires=core_requirements,
    extras_require={
        "dev": [
            "pytest>=7.4.3",
            "pytest-asyncio>=0.21.1",
            "black>=23.11.0",
            "flake8>=6.1.0",
            "mypy>=1.7.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "spot-radio=spot_radio.cli:cli",
        ],
    },
    include_package_data=True,
    keywords="spotify youtube music radio recommendations queue cli",
    project_urls={
        "Bug Reports": "https://github.com/verryx-02/spot-radio/issues",
        "Source": "https://github.com/verryx-02/spot-radio",
    },
)
