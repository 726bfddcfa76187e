"""Pull request driven SDK generation."""

__version__ = "0.1.0"
