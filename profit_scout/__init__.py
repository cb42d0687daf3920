"""Profit Scout — conversational financial analyst."""

__version__ = "1.0.0"
