# fetchers/__init__.py
from .gw2 import GatewayError, MarketGateway

__all__ = ["GatewayError", "MarketGateway"]
