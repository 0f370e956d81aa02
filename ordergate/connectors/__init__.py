"""Collaborator contracts and the MT5 bridge connector."""

from ordergate.connectors.base import (
    DEFAULT_TIMEOUT_SEC,
    BarFeed,
    MarketDataSource,
    OrderGateway,
    guarded_call,
)
from ordergate.connectors.bridge_client import BridgeBarFeed, BridgeRestClient

__all__ = [
    "DEFAULT_TIMEOUT_SEC",
    "BarFeed",
    "MarketDataSource",
    "OrderGateway",
    "guarded_call",
    "BridgeBarFeed",
    "BridgeRestClient",
]
