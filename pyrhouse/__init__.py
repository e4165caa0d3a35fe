"""Warehouse locations, item categories, users and service desk as a Flask web service."""

__version__ = "1.0.0"