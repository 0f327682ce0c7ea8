#!/usr/bin/env python3
"""
Tests for the RTNetlink collaborator against the loopback interface

Skipped when the C library cannot be compiled or netlink is not reachable.
"""

import errno
import ipaddress
import re
import pytest

from etherinfo import EtherInfo
from etherinfo.address import NetlinkIPAddress
from etherinfo.exceptions import DeviceNotFound, DumpInterrupted, NetlinkError

MAC_RE = re.compile(r'^[0-9a-f]{2}(:[0-9a-f]{2})*$')


@pytest.fixture(scope='module')
def nl_query():
    try:
        from etherinfo import nl_query
    except Exception as e:
        pytest.skip(f"netlink C library unavailable: {e}")
    return nl_query


@pytest.fixture
def query(nl_query):
    q = nl_query.NetlinkQuery()
    try:
        q.open()
    except (NetlinkError, PermissionError) as e:
        pytest.skip(f"netlink socket unavailable: {e}")
    yield q
    q.close()


class TestNetlinkQuery:

    def test_loopback_mac(self, query):
        assert query.get_link('lo') == '00:00:00:00:00:00'

    def test_loopback_ipv4(self, query):
        addresses = query.get_addresses('lo', 'ipv4')
        for addr in addresses:
            assert isinstance(addr, NetlinkIPAddress)
            assert addr.family == 'ipv4'
            assert 0 <= addr.prefixlen <= 32
            assert ipaddress.ip_address(addr.address).version == 4
        loopback = [addr for addr in addresses if addr.address == '127.0.0.1']
        for addr in loopback:
            assert addr.scope == 'host'

    def test_loopback_ipv6(self, query):
        for addr in query.get_addresses('lo', 'ipv6'):
            assert addr.family == 'ipv6'
            assert addr.broadcast is None
            assert 0 <= addr.prefixlen <= 128
            assert ipaddress.ip_address(addr.address).version == 6

    def test_repeated_queries_on_one_socket(self, query):
        first = query.get_addresses('lo', 'ipv4')
        second = query.get_addresses('lo', 'ipv4')
        assert first == second
        assert query.get_link('lo') == query.get_link('lo')

    def test_unknown_device(self, query):
        with pytest.raises(DeviceNotFound) as exc_info:
            query.get_link('nosuchdev0')
        assert exc_info.value.errno == errno.ENODEV
        with pytest.raises(DeviceNotFound):
            query.get_addresses('nosuchdev0', 'ipv4')

    def test_invalid_family(self, query):
        with pytest.raises(ValueError):
            query.get_addresses('lo', 'ipx')

    def test_closed_socket(self, nl_query):
        q = nl_query.NetlinkQuery()
        with pytest.raises(NetlinkError):
            q.get_link('lo')

    def test_close_idempotent(self, query):
        query.close()
        query.close()
        assert query.sock == -1

    def test_context_manager(self, nl_query):
        try:
            with nl_query.NetlinkQuery() as q:
                assert q.sock >= 0
        except (NetlinkError, PermissionError) as e:
            pytest.skip(f"netlink socket unavailable: {e}")
        assert q.sock == -1


class TestErrnoMapping:

    def test_interrupted_dump(self, nl_query):
        with pytest.raises(DumpInterrupted) as exc_info:
            nl_query._raise_for_errno(errno.EINTR, "Failed to receive response for RTM_GETADDR", "lo")
        assert exc_info.value.errno == errno.EINTR
        assert isinstance(exc_info.value, NetlinkError)

    def test_failed_dump(self, nl_query):
        with pytest.raises(NetlinkError) as exc_info:
            nl_query._raise_for_errno(errno.ENOBUFS, "Failed to receive response for RTM_GETADDR", "lo")
        assert exc_info.value.errno == errno.ENOBUFS
        assert not isinstance(exc_info.value, DumpInterrupted)

    def test_no_device(self, nl_query):
        with pytest.raises(DeviceNotFound):
            nl_query._raise_for_errno(errno.ENODEV, "Failed to send RTM_GETLINK request", "nosuchdev0")

    def test_permission(self, nl_query):
        with pytest.raises(PermissionError):
            nl_query._raise_for_errno(errno.EPERM, "Failed to create netlink socket")


class TestEtherInfoLoopback:

    def test_record(self, query):
        with EtherInfo('lo') as info:
            assert info.device == 'lo'
            assert MAC_RE.match(info.mac_address)
            assert isinstance(info.ipv4_netmask, int)
            text = str(info)
        assert text.startswith("Device lo:\n\tMAC address: 00:00:00:00:00:00\n")
        assert text.endswith("\n")
