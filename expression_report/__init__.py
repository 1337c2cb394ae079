"""Exploratory report for a three-factor GEO microarray series."""

__version__ = "0.1.0"
