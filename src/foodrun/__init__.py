"""foodrun - order lifecycle core for a multi-portal food delivery service."""

__version__ = "0.1.0"
