"""
Setup script for lumen-sync.

lumen-sync is the offline-tolerant data layer behind the Lumen industrial
training front end. It serves three roles:

1. Data Access - Merged seed / remote / local views, scoped per tenant
2. Progression - Experience, ranks and badges with concurrency-safe writes
3. Offline Fallback - Full operation on seed and local data when the
   remote services are unreachable

The 'lumen' command exposes the same operations from the terminal.
"""

import os

from setuptools import find_packages, setup

setup(
    name="lumen-sync",
    version="1.0.0",
    description="Offline-tolerant, multi-tenant data layer for the Lumen training platform",
    long_description=open("README.md", encoding="utf-8").read() if os.path.exists("README.md") else "",
    long_description_content_type="text/markdown",
    author="Lumen",
    packages=find_packages(exclude=["tests", "tests.*"]),
    py_modules=["config"],
    python_requires=">=3.10",
    install_requires=[
        # CLI
        "typer>=0.9.0",
        "rich>=13.0.0",
        # Config & Validation
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        # HTTP
        "httpx>=0.25.0",
        # Logging
        "loguru>=0.7.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
            "pytest-cov>=4.0.0",
            "ruff>=0.1.0",
            "mypy>=1.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "lumen=lumen.cli.main:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Intended Audience :: Developers",
        "Intended Audience :: Education",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Education",
    ],
    keywords="training offline-first multi-tenant gamification data-layer",
)
