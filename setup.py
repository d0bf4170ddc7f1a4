"""Setup script for the validator updater."""

from setuptools import find_packages, setup

setup(
    name="validator-updater",
    version="0.1.0",
    description="Keeps a dstack validator VM in sync with the platform compose config",
    author="Platform Validator Team",
    packages=find_packages(include=["validator_updater", "validator_updater.*"]),
    python_requires=">=3.10",
    install_requires=[
        "httpx>=0.24.0",
        "pydantic>=2.0",
        "cryptography>=41.0.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "validator-updater=validator_updater.cli:main",
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: System Administrators",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
)
