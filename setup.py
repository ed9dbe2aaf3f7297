"""
Setup script for the epyc-engine package.
"""

from setuptools import setup, find_packages

setup(
    name="epyc-engine",
    version="1.0.0",
    description="Turn rotation and lifecycle engine for an asynchronous writing/drawing game",
    author="Course Staff",
    python_requires=">=3.10",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    install_requires=[
        "python-dotenv>=1.0.0",
        "pydantic>=2.5.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
        ],
    },
    # Schema is loaded from the package directory at runtime
    package_data={
        "epyc_engine._store": ["schema.sql"],
    },
    entry_points={
        "console_scripts": [
            "epyc-engine=epyc_engine.cli:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
)
