"""Exploratory analysis of NYC motor vehicle collision records."""

__version__ = "0.1.0"
