# SPDX-License-Identifier: LGPL-3.0-or-later
from setuptools import setup, find_packages

setup(
    name="hyper2rhv",
    version="0.0.1",
    packages=find_packages(include=["hyper2rhv", "hyper2rhv.*"]),
    python_requires=">=3.8",
    install_requires=[l.strip() for l in open("requirements.txt", encoding="utf-8") if l.strip() and not l.startswith("#")],
    extras_require={"test": ["pytest"]},
    entry_points={"console_scripts": ["hyper2rhv=hyper2rhv.__main__:main"]},
)
