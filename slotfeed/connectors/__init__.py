"""Connector implementations for slot discovery and retrieval."""

from slotfeed.connectors.base import Connector, ConnectorSettings
from slotfeed.connectors.local_dir import LocalDirectoryConnector
from slotfeed.connectors.memory import MemoryConnector

__all__ = [
    "Connector",
    "ConnectorSettings",
    "LocalDirectoryConnector",
    "MemoryConnector",
]
