"""お便り (listener message) submission backend for the school radio program."""

__version__ = "1.0.0"
