#!/usr/bin/env python3
"""
Setup script for soopchat
"""

from setuptools import setup, find_packages

setup(
    name="soopchat",
    version="0.1.0",
    description="Client for the SOOP live-streaming chat protocol",
    packages=find_packages(include=["soopchat", "soopchat.*"]),
    install_requires=[
        "websockets==15.0",
        "httpx==0.27.2",
        "typer==0.12.3",
        "click==8.1.7",
        "rich==13.9.2",
        "PyYAML==6.0.2",
    ],
    extras_require={
        "test": [
            "pytest==8.4.2",
            "pytest-asyncio==1.2.0",
        ],
    },
    python_requires=">=3.9",
    entry_points={
        'console_scripts': [
            'soopchat=soopchat.cli:main',
        ],
    },
)
