"""Intervention lifecycle workflow engine for property management teams"""

__version__ = "1.0.0"
