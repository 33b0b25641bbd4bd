"""dpmm - declarative meta-manager for package managers."""

__version__ = "0.1.0"
