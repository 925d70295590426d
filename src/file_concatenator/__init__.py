"""Filter, concatenate and export many text files as one artifact."""

__version__ = "0.1.0"
