"""
QJournal - Trade Journal Analytics

Public API for normalizing trade journals and computing portfolio analytics.
"""

from importlib.metadata import version

try:
    __version__ = version("qjournal")
except Exception:
    __version__ = "0.0.0.dev"  # Fallback for development


__all__ = [
    "__version__",
]
