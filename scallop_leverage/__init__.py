"""Leveraged Scallop position bot: borrow-capacity engine and deposit/borrow loop."""

__version__ = "0.1.0"
