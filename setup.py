#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Setup configuration for the cargo status update service.
"""

from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="cargo-status-service",
    version="1.0.0",
    author="Vanguard Cargo Platform",
    author_email="dev@vanguardcargo.com",
    description="Bulk status updates, tracking timelines and audit history for cargo packages and shipment groups",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(include=["core", "core.*", "microservices", "microservices.*"]),
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    python_requires=">=3.9",
    install_requires=[
        "pydantic>=2.0.0",
        "fastapi>=0.100.0",
        "uvicorn>=0.23.0",
        "httpx>=0.24.0",
        "python-dotenv>=1.0.0",
        "nats-py>=2.6.0",
        "tenacity>=8.0.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "status-update-service=microservices.status_update_service.main:main",
        ],
    },
)
