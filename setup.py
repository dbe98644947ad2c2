"""
ORMGen - Declarative entities to CRUD repositories and query builders
Install: pip install -e .
"""

from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as f:
    long_description = f.read()

setup(
    name="ormgen",
    version="1.0.0",
    author="Diegoproggramer",
    author_email="",
    description="Generate CRUD repositories and fluent query builders from declarative entities",
    long_description=long_description,
    long_description_content_type="text/markdown",
    url="https://github.com/Diegoproggramer/ormgen",
    packages=find_packages(exclude=("tests", "tests.*")),
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Topic :: Software Development :: Code Generators",
        "Topic :: Database",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Framework :: AsyncIO",
        "Framework :: Pydantic :: 2",
    ],
    python_requires=">=3.10",
    install_requires=[
        "sqlalchemy[asyncio]>=2.0.0",
        "pydantic>=2.0.0",
        "PyYAML>=6.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "pytest-asyncio>=0.21",
            "aiosqlite>=0.19",
        ],
        "dev": [
            "pytest>=7.0",
            "pytest-asyncio>=0.21",
            "aiosqlite>=0.19",
            "black>=23.0",
            "ruff>=0.1.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "ormgen=ormgen.cli:main",
        ],
    },
    keywords="orm, generator, crud, query-builder, sqlite, postgresql, mysql, pydantic",
    project_urls={
        "Bug Reports": "https://github.com/Diegoproggramer/ormgen/issues",
        "Source": "https://github.com/Diegoproggramer/ormgen",
    },
)
