"""
Web surface for Glossa: the agent websocket hub app and the SSE web app.
"""

from glossa import __version__

__all__ = ["__version__"]
