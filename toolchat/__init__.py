"""Tool-calling chatbot service."""

__version__ = "0.1.0"
