"""myStrom WiFi switch plugin: LAN discovery, reachability and cached state access."""

from .aggregator import DiscoveryAggregator
from .controller import ReachabilityTracker
from .discovery import DiscoverySource, StaticDiscovery, UdpDiscovery
from .exceptions import InvalidResponseError, MyStromError, NotReachableError, TransportError
from .plugin import MyStromPlugin
from .service import MyStromService

__all__ = [
    "DiscoveryAggregator",
    "DiscoverySource",
    "InvalidResponseError",
    "MyStromError",
    "MyStromPlugin",
    "MyStromService",
    "NotReachableError",
    "ReachabilityTracker",
    "StaticDiscovery",
    "TransportError",
    "UdpDiscovery",
]
