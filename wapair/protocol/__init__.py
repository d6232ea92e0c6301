"""Protocol client interfaces and implementations."""

from wapair.protocol.base import ProtocolClient, ProtocolHandle
from wapair.protocol.factory import create_protocol_client

__all__ = ["ProtocolClient", "ProtocolHandle", "create_protocol_client"]
