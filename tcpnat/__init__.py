"""A two-sided TCP network address translator: packet views, connection tracking and a capture loop."""

__version__ = "0.1.0"
__all__ = ["connections", "nat", "packets"]