"""
polytext setup.py — Package configuration and CLI entry point.
"""

from setuptools import find_packages, setup

setup(
    name="polytext",
    version="1.0.0",
    description="polytext — Per-field translations for SQLAlchemy models",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.11",
    entry_points={
        "console_scripts": [
            "polytext=polytext.cli:main",
        ],
    },
    install_requires=[
        "sqlalchemy>=2.0",
        "psycopg2-binary>=2.9",
        "pydantic>=2.5",
        "pyyaml>=6.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
        ],
    },
)
