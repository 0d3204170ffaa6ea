"""
Exchange Gateway - Venues Package.

============================================================
PURPOSE
============================================================
Venue adapter implementations.

AVAILABLE VENUES:
- BitcoinTradeAdapter: Bitcoin Trade (token-header scheme)
- FoxBitAdapter: FoxBit / Blinktrade (message-type over HMAC)

UTILITIES:
- VenueFactory: Factory for creating adapters
- VenuePool: Manage multiple adapters

============================================================
"""

# Base
from .base import VenueAdapter, CREATE_MARKET_ORDER

# Venues
from .btctrade import BitcoinTradeAdapter
from .foxbit import FoxBitAdapter

# Factory
from .factory import VenueFactory, VenuePool


__all__ = [
    # Base
    "VenueAdapter",
    "CREATE_MARKET_ORDER",
    # Venues
    "BitcoinTradeAdapter",
    "FoxBitAdapter",
    # Factory
    "VenueFactory",
    "VenuePool",
]
