# Sources Module - Event Producers
#
# EventSource contract plus its two variants: the synthetic generator
# and HTTP feed adapters (URLhaus URL reputation, blocklist.de IPv4).

from .base import EventSource
from .blocklist import BlocklistFeed
from .feed import FeedFetchError, FeedPayloadError, FeedSource
from .synthetic import EVENT_CATALOG, SyntheticSource
from .urlhaus import URLhausFeed

__all__ = [
    "EventSource",
    "SyntheticSource",
    "EVENT_CATALOG",
    "FeedSource",
    "FeedFetchError",
    "FeedPayloadError",
    "URLhausFeed",
    "BlocklistFeed",
]
