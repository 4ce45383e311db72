"""Hybrid semantic and lexical hospital search service."""

__version__ = "0.1.0"
