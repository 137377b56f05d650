"""Extract and upgrade media from public Instagram posts."""

__version__ = "0.1.0"
