#!/usr/bin/env python3
"""
Read-only network interface information backed by RTNetlink

An EtherInfo record describes one named interface:
- device: interface name
- mac_address: hardware address, queried once and cached
- ipv4_address / ipv4_netmask / ipv4_broadcast: last configured IPv4 address
- get_ipv4_addresses() / get_ipv6_addresses(): every configured address

Address lists are queried from the kernel on every access, so two reads may
disagree if the configuration changes in between. Nothing on the record can be
assigned.

Usage:
    python3 -m etherinfo.device_info eth0             # Text summary
    python3 -m etherinfo.device_info eth0 wlan0 -j    # JSON output
    python3 -m etherinfo.device_info eth0 --ipv6      # IPv6 addresses only
"""

import json
import logging
import sys
from typing import Any, Callable, Dict, List, Optional

from etherinfo.address import FAMILY_IPV4, FAMILY_IPV6, NetlinkIPAddress, last_address
from etherinfo.exceptions import DeviceNotFound, NoDataAvailable, ReadOnlyAttribute

logger = logging.getLogger(__name__)

__all__ = ("EtherInfo", "main")

# Hardware address not queried yet
_UNSET = object()


def _default_query_factory():
    # Importing nl_query compiles the C library, so wait until a query is needed
    from etherinfo.nl_query import NetlinkQuery
    return NetlinkQuery()


class EtherInfo:
    """Contains information about a specific ethernet device"""

    _device = None
    _hwaddress = _UNSET
    _session = None
    _query_factory = None
    _closed = False

    def __init__(self, device: str, query_factory: Optional[Callable[[], Any]] = None):
        if not isinstance(device, str) or not device:
            raise ValueError(f"Invalid device name: {device!r}")
        self._store('_device', device)
        self._store('_query_factory', query_factory)

    def _store(self, name: str, value: Any):
        object.__setattr__(self, name, value)

    # Attribute access

    def __getattribute__(self, name: str):
        getter = _ATTRIBUTE_GETTERS.get(name)
        if getter is not None:
            return getter(self)
        return object.__getattribute__(self, name)

    def __setattr__(self, name: str, value: Any):
        raise ReadOnlyAttribute()

    def __delattr__(self, name: str):
        raise ReadOnlyAttribute()

    def _check_data(self):
        if self._closed:
            raise NoDataAvailable()

    def _get_device(self) -> Optional[str]:
        self._check_data()
        return self._device

    def _get_mac_address(self) -> Optional[str]:
        self._check_data()
        self._get_link()
        return self._hwaddress

    def _get_ipv4_address(self) -> Optional[str]:
        addr = last_address(self.get_ipv4_addresses())
        return addr.address if addr else None

    def _get_ipv4_netmask(self) -> int:
        addr = last_address(self.get_ipv4_addresses())
        return addr.prefixlen if addr else 0

    def _get_ipv4_broadcast(self) -> Optional[str]:
        addr = last_address(self.get_ipv4_addresses())
        return addr.broadcast if addr else None

    # Queries

    def _get_session(self):
        session = self._session
        if session is None:
            factory = self._query_factory or _default_query_factory
            session = factory()
            session.open()
            self._store('_session', session)
            logger.debug("%s: opened query session", self._device)
        return session

    def _get_link(self):
        # A successful query that finds no link layer address is cached as
        # None, only a query that raises leaves the field unset
        if self._device is None:
            raise NoDataAvailable()
        if self._hwaddress is _UNSET:
            hwaddress = self._get_session().get_link(self._device)
            self._store('_hwaddress', hwaddress)
            logger.debug("%s: hardware address %s", self._device, hwaddress)

    def _get_addresses(self, family: str) -> List[NetlinkIPAddress]:
        self._check_data()
        if self._device is None:
            raise NoDataAvailable()
        return self._get_session().get_addresses(self._device, family)

    def get_ipv4_addresses(self) -> List[NetlinkIPAddress]:
        """Retrieve configured IPv4 addresses.  Returns a list of NetlinkIPAddress objects"""
        return self._get_addresses(FAMILY_IPV4)

    def get_ipv6_addresses(self) -> List[NetlinkIPAddress]:
        """Retrieve configured IPv6 addresses.  Returns a list of NetlinkIPAddress objects"""
        return self._get_addresses(FAMILY_IPV6)

    # Output

    def __str__(self) -> str:
        self._check_data()
        self._get_link()

        lines = [f"Device {self._device}:\n"]

        if self._hwaddress:
            lines.append(f"\tMAC address: {self._hwaddress}\n")

        for addr in self.get_ipv4_addresses():
            line = f"\tIPv4 address: {addr.address}/{addr.prefixlen}"
            if addr.broadcast:
                line += f"  Broadcast: {addr.broadcast}"
            lines.append(line + "\n")

        for addr in self.get_ipv6_addresses():
            lines.append(f"\tIPv6 address: [{addr.scope}] {addr.address}/{addr.prefixlen}\n")

        return ''.join(lines)

    def __repr__(self) -> str:
        if self._closed:
            return f"<{type(self).__name__} (closed)>"
        return f"<{type(self).__name__} device={self._device!r}>"

    def asdict(self) -> Dict[str, Any]:
        """JSON friendly view, queried the same way as str()"""
        self._check_data()
        self._get_link()
        return {
            'device': self._device,
            'mac_address': self._hwaddress,
            'ipv4_addresses': [addr.asdict() for addr in self.get_ipv4_addresses()],
            'ipv6_addresses': [addr.asdict() for addr in self.get_ipv6_addresses()],
        }

    # Lifecycle

    def __copy__(self):
        # The copy opens its own session on first query
        self._check_data()
        if self._device is None:
            raise NoDataAvailable()
        return type(self)(self._device, self._query_factory)

    def __deepcopy__(self, memo):
        return self.__copy__()

    def __reduce__(self):
        raise TypeError(f"cannot pickle {type(self).__name__!r} object")

    def close(self):
        if self._closed:
            return
        session = self._session
        self._store('_closed', True)
        self._store('_session', None)
        self._store('_device', None)
        self._store('_hwaddress', _UNSET)
        if session is not None:
            session.close()
            logger.debug("Closed query session %r", session)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb): #@UnusedVariable
        self.close()
        return False

    def __del__(self):
        self.close()


_ATTRIBUTE_GETTERS = {
    'device': EtherInfo._get_device,
    'mac_address': EtherInfo._get_mac_address,
    'ipv4_address': EtherInfo._get_ipv4_address,
    'ipv4_netmask': EtherInfo._get_ipv4_netmask,
    'ipv4_broadcast': EtherInfo._get_ipv4_broadcast,
}


def main():
        """Main entry point for the etherinfo command."""
        import argparse
        from etherinfo import __version__

        parser = argparse.ArgumentParser(description='Network Interface Information Tool')
        parser.add_argument('devices', nargs='+', metavar='DEVICE',
                            help='Interface to show (e.g., eth0, wlan0)')
        parser.add_argument("-j", "--json", action='store_true',
                            help="Output in JSON format")
        family = parser.add_mutually_exclusive_group()
        family.add_argument('--ipv4', action='store_true',
                            help='Show only IPv4 addresses')
        family.add_argument('--ipv6', action='store_true',
                            help='Show only IPv6 addresses')
        parser.add_argument('--debug', action='store_true',
                            help='Enable debug logging')
        parser.add_argument('--version', action='version',
                            version=f'%(prog)s {__version__}')

        args = parser.parse_args()
        if args.json and (args.ipv4 or args.ipv6):
            parser.error("--json cannot be combined with --ipv4 or --ipv6")

        if args.debug:
            logging.basicConfig(level=logging.DEBUG)

        try:
            results = {}
            for device in args.devices:
                try:
                    with EtherInfo(device) as info:
                        if args.json:
                            results[device] = info.asdict()
                        elif args.ipv4:
                            for addr in info.get_ipv4_addresses():
                                print(f"{device}: {addr.address}/{addr.prefixlen}")
                        elif args.ipv6:
                            for addr in info.get_ipv6_addresses():
                                print(f"{device}: [{addr.scope}] {addr.address}/{addr.prefixlen}")
                        else:
                            print(info, end="")
                except DeviceNotFound:
                    print(f"Warning: Device '{device}' not found", file=sys.stderr)

            if args.json:
                print(json.dumps(results, indent=2))

        except PermissionError:
            print("Error: This tool requires root privileges (sudo)", file=sys.stderr)
            sys.exit(1)
        except Exception as e:
            print(f"Error: {e}", file=sys.stderr)
            import traceback
            traceback.print_exc()
            sys.exit(1)

        return 0


if __name__ == '__main__':
    main()
