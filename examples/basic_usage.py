#!/usr/bin/env python3
"""
Example: Basic usage of the etherinfo package

This example demonstrates the two ways to manage an EtherInfo record's
netlink socket:
  - Pattern 1: Context manager (recommended, socket closed on exit)
  - Pattern 2: Manual management with close()

The socket is only opened on the first query, so creating a record and
reading its device name never touches the kernel.
"""

import sys

def pattern1_context_manager(device):
    """Pattern 1: Context Manager"""
    print("\nPattern 1: Context Manager")
    print("-" * 70)

    from etherinfo import EtherInfo

    with EtherInfo(device) as info:
        print(f"Device:      {info.device}")
        print(f"MAC address: {info.mac_address}")
        # Single address view: the last configured IPv4 address
        print(f"IPv4:        {info.ipv4_address}/{info.ipv4_netmask}")
        print(f"Broadcast:   {info.ipv4_broadcast}")

def pattern2_manual(device):
    """Pattern 2: Manual management"""
    print("\nPattern 2: Manual Management")
    print("-" * 70)

    from etherinfo import EtherInfo

    info = EtherInfo(device)
    try:
        for addr in info.get_ipv4_addresses():
            print(f"  {addr.ipinterface} (network {addr.ipinterface.network})")
        for addr in info.get_ipv6_addresses():
            print(f"  {addr.ipinterface} scope {addr.scope}")
        print()
        print(info, end="")
    finally:
        info.close()

def read_only_demo(device):
    """Records cannot be modified"""
    print("\nRead-only Records")
    print("-" * 70)

    from etherinfo import EtherInfo

    with EtherInfo(device) as info:
        try:
            info.device = 'other0'
        except AttributeError as e:
            print(f"  Assignment rejected: {e}")

def main():
    device = sys.argv[1] if len(sys.argv) > 1 else 'lo'

    print("=" * 70)
    print(f"etherinfo Basic Usage Examples ({device})")
    print("=" * 70)

    try:
        pattern1_context_manager(device)
        pattern2_manual(device)
        read_only_demo(device)

        print("\n" + "=" * 70)
        print("✓ All examples completed successfully!")
        print("=" * 70)

    except Exception as e:
        print(f"\n✗ Error: {e}", file=sys.stderr)
        import traceback
        traceback.print_exc()
        return 1

    return 0

if __name__ == '__main__':
    sys.exit(main())
