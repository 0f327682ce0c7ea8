#!/usr/bin/env python3
"""
Package level tests for etherinfo: imports, metadata and the command line tool
"""

import pytest
import sys
import json
from io import StringIO
from unittest.mock import patch, Mock

from etherinfo import NetlinkIPAddress
from etherinfo.exceptions import DeviceNotFound, NetlinkError


def fake_session(mac="00:11:22:33:44:55", ipv4=(), ipv6=()):
    session = Mock()
    session.get_link.return_value = mac
    session.get_addresses.side_effect = (
        lambda ifname, family: list(ipv4 if family == 'ipv4' else ipv6)
    )
    return session


def run_main(argv, session):
    """Run device_info.main() with a fake query session, return (code, stdout, stderr)"""
    from etherinfo import device_info

    old_stdout, old_stderr, old_argv = sys.stdout, sys.stderr, sys.argv
    sys.stdout = out = StringIO()
    sys.stderr = err = StringIO()
    sys.argv = ['etherinfo'] + argv

    try:
        with patch.object(device_info, '_default_query_factory', return_value=session):
            try:
                code = device_info.main()
            except SystemExit as e:
                code = e.code
        return code, out.getvalue(), err.getvalue()
    finally:
        sys.stdout, sys.stderr, sys.argv = old_stdout, old_stderr, old_argv


ETH0_V4 = NetlinkIPAddress(family='ipv4', address='10.0.0.5', prefixlen=24,
                           broadcast='10.0.0.255', scope='global')
ETH0_V6 = NetlinkIPAddress(family='ipv6', address='fe80::1', prefixlen=64, scope='link')

# ============================================================================
# Basic Import and Structure Tests
# ============================================================================

def test_package_imports():
    """Test that the public modules can be imported without compiling C code"""
    try:
        import etherinfo
        from etherinfo import device_info, address, exceptions
        assert etherinfo.__version__ == "1.0.0"
    except ImportError as e:
        pytest.fail(f"Failed to import etherinfo modules: {e}")

def test_package_metadata():
    """Test package metadata"""
    import etherinfo

    assert hasattr(etherinfo, '__version__')
    assert hasattr(etherinfo, '__author__')
    assert hasattr(etherinfo, '__license__')

def test_public_names():
    import etherinfo

    for name in etherinfo.__all__:
        assert hasattr(etherinfo, name), f"etherinfo.{name} missing"

def test_module_main_function():
    from etherinfo import device_info

    assert hasattr(device_info, 'main')
    assert callable(device_info.main)

def test_module_has_docstrings():
    from etherinfo import device_info, address

    assert device_info.__doc__ is not None
    assert address.__doc__ is not None

def test_import_does_not_build_c_library():
    """Importing the package leaves the CFFI build to the first query"""
    import os
    import subprocess

    result = subprocess.run(
        [sys.executable, "-c",
         "import sys, etherinfo; print('etherinfo.nl_query' in sys.modules)"],
        capture_output=True, text=True, check=True,
        cwd=os.path.dirname(os.path.dirname(os.path.abspath(__file__))),
    )
    assert result.stdout.strip() == "False"

def test_dump_interrupted_is_netlink_error():
    import errno
    from etherinfo import DumpInterrupted, NetlinkError

    exc = DumpInterrupted()
    assert isinstance(exc, NetlinkError)
    assert exc.errno == errno.EINTR

# ============================================================================
# Command Line Tests
# ============================================================================

class TestCommandLine:
    """Tests for the etherinfo console script"""

    def test_text_output(self):
        session = fake_session(ipv4=[ETH0_V4], ipv6=[ETH0_V6])
        code, out, _ = run_main(['eth0'], session)

        assert code == 0
        assert out == (
            "Device eth0:\n"
            "\tMAC address: 00:11:22:33:44:55\n"
            "\tIPv4 address: 10.0.0.5/24  Broadcast: 10.0.0.255\n"
            "\tIPv6 address: [link] fe80::1/64\n"
        )

    def test_session_closed_after_each_device(self):
        session = fake_session()
        code, _, _ = run_main(['eth0', 'eth1'], session)

        assert code == 0
        assert session.close.call_count == 2

    def test_json_output(self):
        session = fake_session(ipv4=[ETH0_V4], ipv6=[ETH0_V6])
        code, out, _ = run_main(['eth0', '-j'], session)

        assert code == 0
        data = json.loads(out)
        assert data['eth0']['device'] == 'eth0'
        assert data['eth0']['mac_address'] == '00:11:22:33:44:55'
        assert data['eth0']['ipv4_addresses'][0]['broadcast'] == '10.0.0.255'
        assert data['eth0']['ipv6_addresses'][0]['scope'] == 'link'

    def test_ipv4_only(self):
        session = fake_session(ipv4=[ETH0_V4], ipv6=[ETH0_V6])
        code, out, _ = run_main(['eth0', '--ipv4'], session)

        assert code == 0
        assert out == "eth0: 10.0.0.5/24\n"

    def test_ipv6_only(self):
        session = fake_session(ipv4=[ETH0_V4], ipv6=[ETH0_V6])
        code, out, _ = run_main(['eth0', '--ipv6'], session)

        assert code == 0
        assert out == "eth0: [link] fe80::1/64\n"

    def test_missing_device_warns_and_continues(self):
        session = fake_session()
        session.get_link.side_effect = [DeviceNotFound('nosuch0'), '00:11:22:33:44:55']
        code, out, err = run_main(['nosuch0', 'eth0'], session)

        assert code == 0
        assert "Device 'nosuch0' not found" in err
        assert out.startswith("Device eth0:\n")

    def test_netlink_failure_exits_with_error(self):
        session = fake_session()
        session.get_link.side_effect = NetlinkError("Failed to receive response", error_code=5)
        code, _, err = run_main(['eth0'], session)

        assert code == 1
        assert "Error: Failed to receive response" in err

    def test_permission_error(self):
        session = fake_session()
        session.open.side_effect = PermissionError(1, "Operation not permitted")
        code, _, err = run_main(['eth0'], session)

        assert code == 1
        assert "root privileges" in err

    def test_json_with_family_filter_rejected(self):
        code, _, _ = run_main(['eth0', '-j', '--ipv4'], fake_session())
        assert code == 2

    def test_device_required(self):
        code, _, _ = run_main([], fake_session())
        assert code == 2

    def test_help(self):
        code, out, _ = run_main(['--help'], fake_session())
        assert code == 0
        assert 'DEVICE' in out

    def test_version(self):
        code, out, _ = run_main(['--version'], fake_session())
        assert code == 0
        assert '1.0.0' in out

# ============================================================================
# Entry Point Tests
# ============================================================================

class TestEntryPoints:
    """Tests for console script entry points"""

    def test_entry_point_exists(self):
        """Test that the console script entry point is defined"""
        import importlib.metadata as metadata

        try:
            dist = metadata.distribution('etherinfo')
        except metadata.PackageNotFoundError:
            pytest.skip("etherinfo package not installed")

        scripts = {ep.name: ep.value for ep in dist.entry_points
                   if ep.group == 'console_scripts'}
        assert scripts.get('etherinfo') == 'etherinfo.device_info:main'


if __name__ == '__main__':
    pytest.main([__file__, '-v', '--tb=short'])
