"""Spare-hour destination recommender."""

__version__ = "0.1.0"
