"""
python -m build
twine upload dist/*
"""

import re
from setuptools import setup, find_packages


def sacrud_setup():
    with open("requirements.txt", "rt") as fp:
        install_requires = fp.read().strip().split("\n")

    with open("sacrud/__about__.py", "rt") as fp:
        version = re.search(r'__version__ = "([^"]+)"', fp.read()).group(1)

    setup(
        name="sacrud",
        packages=find_packages(exclude=["tests", "tests.*", "examples", "examples.*"]),
        version=version,
        license="MIT",
        description="sacrud : declarative CRUD controllers for SQLAlchemy",
        long_description=open("README.rst").read(),
        keywords=["SqlAlchemy", "FastAPI", "REST", "CRUD", "asyncio"],
        python_requires=">=3.8, <4",
        install_requires=install_requires,
        classifiers=[
            "Development Status :: 3 - Alpha",
            "License :: OSI Approved :: MIT License",
            "Intended Audience :: Developers",
            "Framework :: FastAPI",
            "Framework :: AsyncIO",
            "Topic :: Software Development :: Libraries",
            "Environment :: Web Environment",
            "Programming Language :: Python :: 3.12",
            "Programming Language :: Python :: 3.11",
            "Programming Language :: Python :: 3.10",
            "Programming Language :: Python :: 3.9",
            "Programming Language :: Python :: 3.8",
        ],
        extras_require={
            "test": ["pytest>=7", "pytest-asyncio>=0.21", "httpx>=0.24", "aiosqlite>=0.19"],
            "examples": ["aiosqlite>=0.19", "uvicorn>=0.20"],
        },
    )


sacrud_setup()  # pragma: no cover
