"""ashcode: streaming coding assistant for your terminal."""

__version__ = "0.1.0"
