"""
how package

Ask a natural-language question, get back a shell command with a short
explanation. Commands you run are remembered in a local SQLite database and
fed back into the prompt when you ask something similar.
"""

__version__ = "0.1.0"

__all__ = [
    "config",
    "db",
    "keywords",
]
