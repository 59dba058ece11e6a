"""Fitness statistics query and year-over-year alignment engine."""

__version__ = "0.3.0"
