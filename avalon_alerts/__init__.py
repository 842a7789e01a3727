"""Leader and API node alerts bot."""

__version__ = "0.1.0"
