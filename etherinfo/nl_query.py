"""
RTNetlink link and address query for a single interface, C library via CFFI

Provides the kernel side of an EtherInfo record:
- Hardware (link layer) address from RTM_GETLINK
- IPv4 addresses with prefix length and broadcast from RTM_GETADDR
- IPv6 addresses with prefix length and scope from RTM_GETADDR

Requirements:
    - Python 3.8+
    - cffi>=1.0.0
    - setuptools (required for Python 3.12+)

The C library is compiled the first time this module is imported, so a C
compiler and the Linux kernel headers must be available.
"""

from cffi import FFI
import errno
import ipaddress
import logging
import os
import socket
import sys
from typing import List, Optional

from etherinfo.address import FAMILY_IPV4, FAMILY_IPV6, NetlinkIPAddress
from etherinfo.exceptions import DeviceNotFound, DumpInterrupted, NetlinkError

# Check Python version
if sys.version_info < (3, 8):
    raise RuntimeError("Python 3.8 or higher is required")

# For Python 3.12+, verify setuptools is available
if sys.version_info >= (3, 12):
    try:
        import setuptools # noqa
    except ImportError:
        raise RuntimeError(
            "Python 3.12+ requires setuptools for CFFI. "
            "Install it with: pip install setuptools"
        )

logger = logging.getLogger(__name__)

__all__ = ("NetlinkQuery",)

# C library source code - RTM_GETLINK / RTM_GETADDR for one interface
C_SOURCE = r"""
#include <stdio.h>
#include <stdlib.h>
#include <string.h>
#include <unistd.h>
#include <sys/socket.h>
#include <sys/time.h>
#include <linux/netlink.h>
#include <linux/rtnetlink.h>
#include <linux/if_addr.h>
#include <arpa/inet.h>
#include <net/if.h>
#include <time.h>
#include <errno.h>

// Netlink attribute type flags
#ifndef NLA_F_NESTED
#define NLA_F_NESTED (1 << 15)
#define NLA_F_NET_BYTEORDER (1 << 14)
#define NLA_TYPE_MASK (~(NLA_F_NESTED | NLA_F_NET_BYTEORDER))
#endif

// Verify we have minimum required kernel headers
#if !defined(NETLINK_ROUTE) || !defined(RTM_GETLINK) || !defined(RTM_GETADDR)
#error "Kernel headers too old - need Linux 2.6+ with rtnetlink support"
#endif

#ifndef NLM_F_DUMP_INTR
#define NLM_F_DUMP_INTR 0x10
#endif

#define HWADDR_MAX 32
#define RECV_BUFSIZE 65536

// Response buffer structure
typedef struct {
    unsigned char* data;
    size_t length;
    size_t capacity;
    unsigned int seq;
} response_buffer_t;

// Link layer information
typedef struct {
    int index;
    unsigned short type;
    unsigned char hwaddr[HWADDR_MAX];
    int hwaddr_len;
    int has_hwaddr;
} link_info_t;

// Address information
typedef struct {
    int index;
    unsigned char family;
    unsigned char prefixlen;
    unsigned char scope;
    unsigned char address[16];
    unsigned char local[16];
    unsigned char broadcast[16];
    int has_address;
    int has_local;
    int has_broadcast;
} addr_info_t;

static unsigned int nl_generate_seq(void) {
    static int initialized = 0;
    if (!initialized) {
        srand(time(NULL) ^ getpid());
        initialized = 1;
    }
    return (unsigned int)rand();
}

// Create netlink socket, returns -errno on failure
int nl_create_socket(void) {
    int sock = socket(AF_NETLINK, SOCK_RAW | SOCK_CLOEXEC, NETLINK_ROUTE);
    if (sock < 0) {
        return -errno;
    }

    // nl_pid 0 lets the kernel pick, so one process can hold many sockets
    struct sockaddr_nl addr;
    memset(&addr, 0, sizeof(addr));
    addr.nl_family = AF_NETLINK;
    addr.nl_pid = 0;
    addr.nl_groups = 0;

    if (bind(sock, (struct sockaddr*)&addr, sizeof(addr)) < 0) {
        int err = errno;
        close(sock);
        return -err;
    }

    int bufsize = 1024 * 1024;
    setsockopt(sock, SOL_SOCKET, SO_RCVBUF, &bufsize, sizeof(bufsize));

    struct timeval tv;
    tv.tv_sec = 5;
    tv.tv_usec = 0;
    setsockopt(sock, SOL_SOCKET, SO_RCVTIMEO, &tv, sizeof(tv));

    return sock;
}

// Close netlink socket
void nl_close_socket(int sock) {
    if (sock >= 0) {
        close(sock);
    }
}

// Send RTM_GETLINK for a single interface index
int nl_send_getlink(int sock, int ifindex, unsigned int* seq_out) {
    struct {
        struct nlmsghdr nlh;
        struct ifinfomsg ifi;
    } req;

    memset(&req, 0, sizeof(req));
    req.nlh.nlmsg_len = NLMSG_LENGTH(sizeof(struct ifinfomsg));
    req.nlh.nlmsg_type = RTM_GETLINK;
    req.nlh.nlmsg_flags = NLM_F_REQUEST | NLM_F_ACK;
    req.nlh.nlmsg_seq = nl_generate_seq();
    req.nlh.nlmsg_pid = 0;
    req.ifi.ifi_family = AF_UNSPEC;
    req.ifi.ifi_index = ifindex;

    if (seq_out) {
        *seq_out = req.nlh.nlmsg_seq;
    }

    if (send(sock, &req, req.nlh.nlmsg_len, 0) < 0) {
        return -errno;
    }
    return 0;
}

// Send RTM_GETADDR dump for one address family
int nl_send_getaddr(int sock, int family, unsigned int* seq_out) {
    struct {
        struct nlmsghdr nlh;
        struct ifaddrmsg ifa;
    } req;

    memset(&req, 0, sizeof(req));
    req.nlh.nlmsg_len = NLMSG_LENGTH(sizeof(struct ifaddrmsg));
    req.nlh.nlmsg_type = RTM_GETADDR;
    req.nlh.nlmsg_flags = NLM_F_REQUEST | NLM_F_DUMP;
    req.nlh.nlmsg_seq = nl_generate_seq();
    req.nlh.nlmsg_pid = 0;
    req.ifa.ifa_family = family;

    if (seq_out) {
        *seq_out = req.nlh.nlmsg_seq;
    }

    if (send(sock, &req, req.nlh.nlmsg_len, 0) < 0) {
        return -errno;
    }
    return 0;
}

// Receive and buffer every message of the request until DONE or ACK.
// On failure returns NULL and stores a positive errno in err_out.
response_buffer_t* nl_recv_response(int sock, unsigned int expected_seq, int* err_out) {
    *err_out = 0;

    response_buffer_t* buf = malloc(sizeof(response_buffer_t));
    if (!buf) {
        *err_out = ENOMEM;
        return NULL;
    }

    buf->capacity = 65536;
    buf->length = 0;
    buf->seq = expected_seq;
    buf->data = malloc(buf->capacity);
    if (!buf->data) {
        free(buf);
        *err_out = ENOMEM;
        return NULL;
    }

    unsigned char* temp_buf = malloc(RECV_BUFSIZE);
    if (!temp_buf) {
        free(buf->data);
        free(buf);
        *err_out = ENOMEM;
        return NULL;
    }

    int done = 0;

    while (!done) {
        ssize_t len = recv(sock, temp_buf, RECV_BUFSIZE, 0);

        if (len < 0) {
            if (errno == EINTR) continue;
            *err_out = errno;
            goto fail;
        }
        if (len == 0) break;

        struct nlmsghdr* nlh = (struct nlmsghdr*)temp_buf;
        int remaining = (int)len;

        for (; NLMSG_OK(nlh, remaining); nlh = NLMSG_NEXT(nlh, remaining)) {
            if (nlh->nlmsg_seq != expected_seq) continue;

            // Dump changed while it was being read, the buffered part is inconsistent
            if (nlh->nlmsg_flags & NLM_F_DUMP_INTR) {
                *err_out = EINTR;
                goto fail;
            }

            if (nlh->nlmsg_type == NLMSG_DONE) {
                if (nlh->nlmsg_len >= NLMSG_LENGTH(sizeof(int))) {
                    int dump_err = *(int*)NLMSG_DATA(nlh);
                    if (dump_err < 0) {
                        *err_out = -dump_err;
                        goto fail;
                    }
                }
                done = 1;
                break;
            }

            if (nlh->nlmsg_type == NLMSG_ERROR) {
                if (nlh->nlmsg_len < NLMSG_LENGTH(sizeof(struct nlmsgerr))) {
                    *err_out = EIO;
                    goto fail;
                }
                struct nlmsgerr* nlerr = (struct nlmsgerr*)NLMSG_DATA(nlh);
                if (nlerr->error != 0) {
                    *err_out = -nlerr->error;
                    goto fail;
                }
                // error 0 is the ACK closing a non-dump request
                done = 1;
                break;
            }

            size_t msg_len = NLMSG_ALIGN(nlh->nlmsg_len);

            while (buf->length + msg_len > buf->capacity) {
                size_t new_capacity = buf->capacity * 2;
                unsigned char* new_data = realloc(buf->data, new_capacity);
                if (!new_data) {
                    *err_out = ENOMEM;
                    goto fail;
                }
                buf->data = new_data;
                buf->capacity = new_capacity;
            }

            memcpy(buf->data + buf->length, nlh, nlh->nlmsg_len);
            memset(buf->data + buf->length + nlh->nlmsg_len, 0, msg_len - nlh->nlmsg_len);
            buf->length += msg_len;
        }
    }

    free(temp_buf);
    return buf;

fail:
    free(temp_buf);
    free(buf->data);
    free(buf);
    return NULL;
}

// Free response buffer
void nl_free_response(response_buffer_t* buf) {
    if (buf) {
        if (buf->data) free(buf->data);
        free(buf);
    }
}

// Parse the first RTM_NEWLINK message. Returns 1 if found, 0 if not.
int nl_parse_link(response_buffer_t* buf, link_info_t* link) {
    if (!buf || !link) return -1;

    memset(link, 0, sizeof(link_info_t));

    struct nlmsghdr* nlh = (struct nlmsghdr*)buf->data;
    int remaining = (int)buf->length;

    for (; NLMSG_OK(nlh, remaining); nlh = NLMSG_NEXT(nlh, remaining)) {
        if (nlh->nlmsg_type != RTM_NEWLINK) continue;
        if (nlh->nlmsg_len < NLMSG_LENGTH(sizeof(struct ifinfomsg))) continue;

        struct ifinfomsg* ifi = NLMSG_DATA(nlh);
        link->index = ifi->ifi_index;
        link->type = ifi->ifi_type;

        struct rtattr* rta = IFLA_RTA(ifi);
        int rta_len = IFLA_PAYLOAD(nlh);

        for (; RTA_OK(rta, rta_len); rta = RTA_NEXT(rta, rta_len)) {
            unsigned short attr_type = rta->rta_type & NLA_TYPE_MASK;
            if (attr_type == IFLA_ADDRESS) {
                int n = RTA_PAYLOAD(rta);
                if (n > HWADDR_MAX) n = HWADDR_MAX;
                memcpy(link->hwaddr, RTA_DATA(rta), n);
                link->hwaddr_len = n;
                link->has_hwaddr = n > 0;
            }
        }
        return 1;
    }

    return 0;
}

// Parse addresses belonging to one interface index and family
int nl_parse_addrs(response_buffer_t* buf, int ifindex, int family,
                   addr_info_t** addrs, int* count) {
    if (!buf || !addrs || !count) return -1;

    *count = 0;
    *addrs = NULL;

    if (family != AF_INET && family != AF_INET6) return -1;
    int width = family == AF_INET ? 4 : 16;

    struct nlmsghdr* nlh = (struct nlmsghdr*)buf->data;
    int remaining = (int)buf->length;
    int max_count = 0;

    // First pass: count address messages
    for (; NLMSG_OK(nlh, remaining); nlh = NLMSG_NEXT(nlh, remaining)) {
        if (nlh->nlmsg_type == RTM_NEWADDR) {
            max_count++;
        }
    }

    if (max_count == 0) return 0;

    *addrs = calloc(max_count, sizeof(addr_info_t));
    if (!*addrs) {
        return -1;
    }

    nlh = (struct nlmsghdr*)buf->data;
    remaining = (int)buf->length;

    // Second pass: keep the ones for this interface, in kernel order
    for (; NLMSG_OK(nlh, remaining); nlh = NLMSG_NEXT(nlh, remaining)) {
        if (nlh->nlmsg_type != RTM_NEWADDR) continue;
        if (nlh->nlmsg_len < NLMSG_LENGTH(sizeof(struct ifaddrmsg))) continue;

        struct ifaddrmsg* ifa = NLMSG_DATA(nlh);
        if ((int)ifa->ifa_index != ifindex) continue;
        if (ifa->ifa_family != family) continue;

        addr_info_t* addr = &(*addrs)[*count];
        addr->index = ifa->ifa_index;
        addr->family = ifa->ifa_family;
        addr->prefixlen = ifa->ifa_prefixlen;
        addr->scope = ifa->ifa_scope;

        struct rtattr* rta = IFA_RTA(ifa);
        int rta_len = IFA_PAYLOAD(nlh);

        for (; RTA_OK(rta, rta_len); rta = RTA_NEXT(rta, rta_len)) {
            unsigned short attr_type = rta->rta_type & NLA_TYPE_MASK;
            if ((int)RTA_PAYLOAD(rta) < width) continue;

            switch (attr_type) {
                case IFA_ADDRESS:
                    memcpy(addr->address, RTA_DATA(rta), width);
                    addr->has_address = 1;
                    break;
                case IFA_LOCAL:
                    memcpy(addr->local, RTA_DATA(rta), width);
                    addr->has_local = 1;
                    break;
                case IFA_BROADCAST:
                    memcpy(addr->broadcast, RTA_DATA(rta), width);
                    addr->has_broadcast = 1;
                    break;
            }
        }

        if (!addr->has_address && !addr->has_local) {
            memset(addr, 0, sizeof(addr_info_t));
            continue;
        }

        (*count)++;
    }

    return 0;
}

// Free parsed addresses
void nl_free_addrs(addr_info_t* addrs) {
    if (addrs) {
        free(addrs);
    }
}

// Scope names as libnl spells them
const char* nl_get_scope_name(unsigned char scope) {
    switch (scope) {
        case RT_SCOPE_UNIVERSE: return "global";
        case RT_SCOPE_SITE: return "site";
        case RT_SCOPE_LINK: return "link";
        case RT_SCOPE_HOST: return "host";
        case RT_SCOPE_NOWHERE: return "nowhere";
        default: return NULL;
    }
}

int nl_get_af_inet(void) { return AF_INET; }
int nl_get_af_inet6(void) { return AF_INET6; }
"""

# Define FFI interface
ffi = FFI()
ffi.cdef("""
typedef struct {
    unsigned char* data;
    size_t length;
    size_t capacity;
    unsigned int seq;
} response_buffer_t;

typedef struct {
    int index;
    unsigned short type;
    unsigned char hwaddr[32];
    int hwaddr_len;
    int has_hwaddr;
} link_info_t;

typedef struct {
    int index;
    unsigned char family;
    unsigned char prefixlen;
    unsigned char scope;
    unsigned char address[16];
    unsigned char local[16];
    unsigned char broadcast[16];
    int has_address;
    int has_local;
    int has_broadcast;
} addr_info_t;

int nl_create_socket(void);
void nl_close_socket(int sock);
int nl_send_getlink(int sock, int ifindex, unsigned int* seq_out);
int nl_send_getaddr(int sock, int family, unsigned int* seq_out);
response_buffer_t* nl_recv_response(int sock, unsigned int expected_seq, int* err_out);
void nl_free_response(response_buffer_t* buf);
int nl_parse_link(response_buffer_t* buf, link_info_t* link);
int nl_parse_addrs(response_buffer_t* buf, int ifindex, int family, addr_info_t** addrs, int* count);
void nl_free_addrs(addr_info_t* addrs);
const char* nl_get_scope_name(unsigned char scope);
int nl_get_af_inet(void);
int nl_get_af_inet6(void);
""")

# Compile the C library
try:
    lib = ffi.verify(C_SOURCE, libraries=[])
except Exception as e:
    if sys.version_info >= (3, 12) and "setuptools" in str(e).lower():
        raise RuntimeError(
            "Failed to compile C extension. Python 3.12+ requires setuptools.\n"
            "Install it with: pip install setuptools"
        ) from e
    raise

AF_INET = lib.nl_get_af_inet()
AF_INET6 = lib.nl_get_af_inet6()

FAMILY_MAP = {
    FAMILY_IPV4: AF_INET,
    FAMILY_IPV6: AF_INET6,
}


def _raise_for_errno(err: int, what: str, ifname: Optional[str] = None):
    if err == errno.ENODEV and ifname is not None:
        raise DeviceNotFound(ifname)
    if err in (errno.EPERM, errno.EACCES):
        raise PermissionError(err, f"{what}: {os.strerror(err)}")
    if err == errno.EINTR:
        raise DumpInterrupted(f"{what}: dump was interrupted")
    raise NetlinkError(f"{what}: {os.strerror(err)}", error_code=err)


def _ifindex(ifname: str) -> int:
    try:
        return socket.if_nametoindex(ifname)
    except OSError:
        raise DeviceNotFound(ifname)


class NetlinkQuery:
    """
    Query link and address information for one interface at a time using
    the RTNETLINK protocol via C library.

    The socket can be managed with open()/close() or as a context manager.
    """

    def __init__(self):
        self.sock = -1

    def __enter__(self):
        """Context manager entry - create socket"""
        return self.open()

    def __exit__(self, exc_type, exc_val, exc_tb): #@UnusedVariable
        """Context manager exit - close socket"""
        self.close()
        return False

    def open(self) -> "NetlinkQuery":
        if self.sock >= 0:
            return self
        sock = lib.nl_create_socket()
        if sock < 0:
            _raise_for_errno(-sock, "Failed to create netlink socket")
        self.sock = sock
        logger.debug("Opened netlink socket %d", sock)
        return self

    def close(self):
        if self.sock >= 0:
            lib.nl_close_socket(self.sock)
            logger.debug("Closed netlink socket %d", self.sock)
            self.sock = -1

    def _receive(self, seq: int, what: str, ifname: str):
        err_ptr = ffi.new("int*")
        response = lib.nl_recv_response(self.sock, seq, err_ptr)
        if not response:
            _raise_for_errno(err_ptr[0], f"Failed to receive response for {what}", ifname)
        return response

    def get_link(self, ifname: str) -> Optional[str]:
        """
        Query the hardware address of an interface.

        Returns:
            Colon separated lower case hex string, or None when the link
            carries no link layer address
        """
        if self.sock < 0:
            raise NetlinkError("Netlink socket is not open")

        index = _ifindex(ifname)
        seq_ptr = ffi.new("unsigned int*")

        rc = lib.nl_send_getlink(self.sock, index, seq_ptr)
        if rc < 0:
            _raise_for_errno(-rc, "Failed to send RTM_GETLINK request", ifname)

        response = self._receive(seq_ptr[0], 'RTM_GETLINK', ifname)
        try:
            link = ffi.new("link_info_t*")
            if lib.nl_parse_link(response, link) <= 0:
                raise DeviceNotFound(ifname)

            logger.debug("RTM_GETLINK %s (index %d): hwaddr_len=%d",
                         ifname, index, link.hwaddr_len)
            if not link.has_hwaddr:
                return None
            hwaddr = bytes(link.hwaddr[0:link.hwaddr_len])
            return ':'.join(f'{b:02x}' for b in hwaddr)
        finally:
            lib.nl_free_response(response)

    def get_addresses(self, ifname: str, family: str) -> List[NetlinkIPAddress]:
        """
        Query the addresses configured on an interface.

        Args:
            ifname: Interface name
            family: 'ipv4' or 'ipv6'

        Returns:
            Addresses in the order the kernel reports them
        """
        if family not in FAMILY_MAP:
            raise ValueError(f"Invalid family: {family}. Use 'ipv4' or 'ipv6'")
        if self.sock < 0:
            raise NetlinkError("Netlink socket is not open")

        af_family = FAMILY_MAP[family]
        index = _ifindex(ifname)
        seq_ptr = ffi.new("unsigned int*")

        rc = lib.nl_send_getaddr(self.sock, af_family, seq_ptr)
        if rc < 0:
            _raise_for_errno(-rc, "Failed to send RTM_GETADDR request", ifname)

        response = self._receive(seq_ptr[0], 'RTM_GETADDR', ifname)
        try:
            addrs_ptr = ffi.new("addr_info_t**")
            count_ptr = ffi.new("int*")

            if lib.nl_parse_addrs(response, index, af_family, addrs_ptr, count_ptr) < 0:
                raise NetlinkError("Failed to parse address messages")

            addrs_array = addrs_ptr[0]
            try:
                addresses = [
                    self._to_address(addrs_array[i], family)
                    for i in range(count_ptr[0])
                ]
            finally:
                lib.nl_free_addrs(addrs_array)
        finally:
            lib.nl_free_response(response)

        logger.debug("RTM_GETADDR %s %s: %d address(es)", ifname, family, len(addresses))
        return addresses

    @staticmethod
    def _to_address(addr, family: str) -> NetlinkIPAddress:
        width = 4 if family == FAMILY_IPV4 else 16

        # IFA_ADDRESS is the peer on point-to-point links, IFA_LOCAL is ours
        raw = addr.local if addr.has_local else addr.address
        address = str(ipaddress.ip_address(bytes(raw[0:width])))

        broadcast = None
        if family == FAMILY_IPV4 and addr.has_broadcast:
            broadcast = str(ipaddress.IPv4Address(bytes(addr.broadcast[0:4])))

        scope_name_ptr = lib.nl_get_scope_name(addr.scope)
        if scope_name_ptr:
            scope = ffi.string(scope_name_ptr).decode('utf-8')
        else:
            scope = f'custom_{addr.scope}'

        return NetlinkIPAddress(
            family=family,
            address=address,
            prefixlen=addr.prefixlen,
            broadcast=broadcast,
            scope=scope,
        )
