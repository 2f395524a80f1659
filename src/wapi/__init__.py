"""wapi - cross-platform DDNS client state store."""

__version__ = "0.1.0"
