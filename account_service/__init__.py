"""Account service core: pooled storage access and the account change lifecycle."""

__version__ = "0.1.0"
