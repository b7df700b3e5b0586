"""
API route modules.
"""

from mindsift.api.routes import chat, videos

__all__ = ["chat", "videos"]
