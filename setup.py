"""
Setup script for studybuddy.

StudyBuddy is the adaptive practice service behind the CBC learning app:

1. Report API - Graded attempts update per-skill proficiency
2. Recommendations - Next activity matched to the learner's weakest skills
3. Offline Sync - Device-side queue that replays reports once back online

The 'studybuddy' command is the CLI entry point.
"""

from setuptools import find_packages, setup

setup(
    name="studybuddy",
    version="0.1.0",
    description="Adaptive practice API and offline sync client for CBC learners",
    long_description=open("README.md", encoding="utf-8").read() if __import__("os").path.exists("README.md") else "",
    long_description_content_type="text/markdown",
    author="StudyBuddy",
    packages=find_packages(include=["studybuddy", "studybuddy.*"]),
    py_modules=["config", "main"],
    python_requires=">=3.10",
    install_requires=[
        # CLI
        "typer>=0.9.0",
        "rich>=13.0.0",
        # API
        "fastapi>=0.110.0",
        "uvicorn>=0.27.0",
        "python-jose[cryptography]>=3.3.0",
        # Database
        "sqlalchemy>=2.0.0",
        "psycopg2-binary>=2.9.0",
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
            "studybuddy=studybuddy.cli.main:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Web Environment",
        "Framework :: FastAPI",
        "Intended Audience :: Education",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Education",
        "Topic :: Education :: Computer Aided Instruction (CAI)",
    ],
    keywords="learning adaptive proficiency education cbc offline-sync",
)
