"""Courier: direct-messaging relay with durable history."""

__version__ = "0.1.0"
