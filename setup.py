#!/usr/bin/env python
import io
import os
import re

from setuptools import find_packages, setup

classifiers = """\
    Development Status :: 3 - Alpha
    Operating System :: OS Independent
    Programming Language :: Python
    Programming Language :: Python :: 3
    Programming Language :: Python :: 3.9
    Programming Language :: Python :: 3.10
    Programming Language :: Python :: 3.11
    Programming Language :: Python :: 3.12
    Topic :: Scientific/Engineering :: Bio-Informatics
"""


def _read(*parts, **kwargs):
    filepath = os.path.join(os.path.dirname(__file__), *parts)
    encoding = kwargs.pop("encoding", "utf-8")
    with io.open(filepath, encoding=encoding) as fh:
        text = fh.read()
    return text


def get_version():
    version = re.search(
        r'^__version__\s*=\s*[\'"]([^\'"]*)[\'"]',
        _read("src", "hicdump", "_version.py"),
        re.MULTILINE,
    ).group(1)
    return version


def get_long_description():
    return _read("README.md")


install_requires = [
    "numpy>=1.17",
    "scipy>=1.3",
    "pandas>=1.5",
    "h5py>=2.10",
    "click>=7",
]


tests_require = [
    "pytest",
]


extras_require = {
    "test": tests_require,
}


setup(
    name="hicdump",
    version=get_version(),
    license="BSD",
    description="Export Hi-C contact matrices, normalization vectors and "
    "expected values as text or binary streams",
    long_description=get_long_description(),
    long_description_content_type="text/markdown",
    keywords=["genomics", "bioinformatics", "Hi-C", "contact", "matrix", "hdf5"],
    python_requires=">=3.9",
    package_dir={"": "src"},
    packages=find_packages("src"),
    zip_safe=False,
    classifiers=[s.strip() for s in classifiers.split("\n") if s],
    install_requires=install_requires,
    extras_require=extras_require,
    entry_points={
        "console_scripts": [
            "hicdump = hicdump.cli:cli",
        ]
    },
)
