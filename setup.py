# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Setup configuration for Release Wizard
"""

from setuptools import setup, find_packages

setup(
    name="release-wizard",
    version="1.0.0",
    description="Release orchestration engine driving Slack, TeamCity, GitHub and Maven Central",
    author="Jason Cafarelli",
    package_dir={"": "backend"},
    packages=find_packages("backend", exclude=["tests", "tests.*"]),
    python_requires=">=3.10",
    install_requires=[
        "pydantic>=2.0.0",
        "httpx>=0.25.0",
        "pyyaml>=6.0",
        "aiofiles>=23.0.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
        ]
    },
)
