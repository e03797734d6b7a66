# This file is maintained for compatibility with tools that don't support pyproject.toml
# Project metadata and dependencies live in pyproject.toml

from setuptools import setup

setup()
