"""
etherinfo - Read-only Linux network interface information over RTNetlink

Modules:
    device_info: EtherInfo records (hardware address, IPv4/IPv6 addresses)
    address: NetlinkIPAddress value objects
    nl_query: RTNetlink link/address queries (C library via CFFI)
    exceptions: Error types

Example:
    >>> from etherinfo import EtherInfo
    >>> with EtherInfo('eth0') as info:
    ...     print(info.mac_address, info.ipv4_address)
"""

__version__ = "1.0.0"
__author__ = "etherinfo contributors"
__license__ = "GPL-2.0-only"

# Importing nl_query compiles the C library, it is loaded on first query
from .address import NetlinkIPAddress, last_address
from .device_info import EtherInfo
from .exceptions import DeviceNotFound, DumpInterrupted, NetlinkError, NoDataAvailable, ReadOnlyAttribute

__all__ = [
    "DeviceNotFound",
    "DumpInterrupted",
    "EtherInfo",
    "NetlinkError",
    "NetlinkIPAddress",
    "NoDataAvailable",
    "ReadOnlyAttribute",
    "last_address",
    "__version__",
]
