"""Continuous-validation gate for blockchain node changes."""

__version__ = "0.3.0"
