"""FPL API access: bounded fetching and endpoint parsing."""

from .endpoints import Bootstrap, ByteBudgets, FplApi, PlayerMeta, rank_delta
from .fetch import (
    CapacityError,
    DataError,
    FetchError,
    FplHttpClient,
    ParseError,
    TransientParseError,
    TransportError,
)

__all__ = [
    "Bootstrap",
    "ByteBudgets",
    "CapacityError",
    "DataError",
    "FetchError",
    "FplApi",
    "FplHttpClient",
    "ParseError",
    "PlayerMeta",
    "TransientParseError",
    "TransportError",
    "rank_delta",
]
