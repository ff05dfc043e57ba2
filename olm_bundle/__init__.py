"""
.. include:: ../README.md
"""

__all__ = [
    "bundle",
    "config",
    "manifest",
    "exceptions",
    # Note this is exposed for CLI documentation, not to be used as a library
    "tool",
]
