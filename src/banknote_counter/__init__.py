"""Banknote counter: debounce classifier output into scans and sum them."""

__version__ = "0.1.0"
