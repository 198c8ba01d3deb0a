"""Transport layer for the autosocket client.

Components:
- stream: Transport protocol and the asyncio stream implementation
"""

from .stream import StreamTransport, Transport

__all__ = ["StreamTransport", "Transport"]
