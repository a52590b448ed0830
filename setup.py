"""
Setup script for cardwise.

cardwise is the spaced-repetition core of a personal study tool. It serves
three roles:

1. Scheduler - FSRS memory model deciding when each card is due again
2. Session driver - bounded review queues and review sessions
3. Analytics - retention, maturity and due forecasts

The 'cardwise' command is a terminal front end over the same core.
"""

from setuptools import find_packages, setup

setup(
    name="cardwise",
    version="1.0.0",
    description="FSRS spaced-repetition scheduling core with a terminal front end",
    long_description=open("README.md", encoding="utf-8").read() if __import__("os").path.exists("README.md") else "",
    long_description_content_type="text/markdown",
    author="cardwise contributors",
    packages=find_packages(include=["cardwise", "cardwise.*"]),
    python_requires=">=3.10",
    install_requires=[
        # CLI
        "typer>=0.9.0",
        "rich>=13.0.0",
        # Database
        "sqlalchemy[asyncio]>=2.0.0",
        "aiosqlite>=0.19.0",
        # Config & Validation
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
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
        "postgres": [
            "asyncpg>=0.28.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "cardwise=cardwise.cli.main:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Intended Audience :: Developers",
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
    keywords="learning spaced-repetition fsrs flashcards cli education",
)
