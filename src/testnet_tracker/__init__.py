"""Deadline tracking and reminder scheduling for recurring testnet tasks."""

__version__ = "0.1.0"
