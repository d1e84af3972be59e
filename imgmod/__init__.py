"""Image moderation and delivery service."""

__version__ = "0.1.0"
