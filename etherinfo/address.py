"""
Address records returned by netlink address queries.
"""

import ipaddress
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence, Union

__all__ = ("FAMILY_IPV4", "FAMILY_IPV6", "NetlinkIPAddress", "last_address")

FAMILY_IPV4 = 'ipv4'
FAMILY_IPV6 = 'ipv6'


@dataclass(frozen=True)
class NetlinkIPAddress:
    """One address configured on an interface."""

    family: str
    address: str
    prefixlen: int
    broadcast: Optional[str] = None
    scope: str = 'global'

    @property
    def netmask(self) -> int:
        """Prefix length, under the name older callers know it by"""
        return self.prefixlen

    @property
    def ipinterface(self) -> Union[ipaddress.IPv4Interface, ipaddress.IPv6Interface]:
        if self.family == FAMILY_IPV4:
            return ipaddress.IPv4Interface(f"{self.address}/{self.prefixlen}")
        return ipaddress.IPv6Interface(f"{self.address}/{self.prefixlen}")

    def asdict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            'family': self.family,
            'address': self.address,
            'prefixlen': self.prefixlen,
            'scope': self.scope,
        }
        if self.broadcast:
            result['broadcast'] = self.broadcast
        return result


def last_address(addresses: Optional[Sequence[Any]]) -> Optional[NetlinkIPAddress]:
    """
    Pick the address a single-address caller would have seen.

    Interfaces used to carry one stored address that every netlink update
    overwrote, so the last record received is the current one.

    Returns:
        The final element, or None if the sequence is empty, missing or
        ends in something other than a NetlinkIPAddress
    """
    if not isinstance(addresses, (list, tuple)) or not addresses:
        return None
    addr = addresses[-1]
    if not isinstance(addr, NetlinkIPAddress):
        return None
    return addr
