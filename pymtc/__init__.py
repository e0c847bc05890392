"""pymtc Python Package

Python library for controlling a MultiTransport playback server over its JSON
event port.
"""

from pymtc.client import MultiTransportClient
from pymtc.connection import ConnectionState

__all__ = ["MultiTransportClient", "ConnectionState"]
