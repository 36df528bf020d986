#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Setup script for ACS Guard

This file is kept for legacy compatibility and pip editable installs.
The main package configuration is in pyproject.toml.
"""

from setuptools import setup

# Version is also set in pyproject.toml and acsguard/_version.py
VERSION = "0.4.0"

# Main setup configuration is in pyproject.toml
setup(
    version=VERSION,
    # All other configuration comes from pyproject.toml
)
