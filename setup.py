"""
Setup script for tiny-ckms.
"""

from setuptools import setup, find_packages

setup(
    name="tiny-ckms",
    version="0.1.0",
    packages=find_packages(include=["tiny_ckms", "tiny_ckms.*"]),
    package_data={"tiny_ckms": ["py.typed"]},
    python_requires=">=3.8",
    extras_require={"test": ["pytest"]},
)
