import errno
from typing import Optional

__all__ = [
    "NetlinkError",
    "DeviceNotFound",
    "DumpInterrupted",
    "NoDataAvailable",
    "ReadOnlyAttribute",
]


class NetlinkError(RuntimeError):
    def __init__(self, message: str, error_code: Optional[int] = None):
        super().__init__(message)
        self.errno = error_code


class DeviceNotFound(NetlinkError):
    def __init__(self, name: str):
        super().__init__(f"No such device: {name}", error_code=errno.ENODEV)
        self.name = name


class DumpInterrupted(NetlinkError):
    def __init__(self, message: str = "Netlink dump was interrupted"):
        super().__init__(message, error_code=errno.EINTR)


class NoDataAvailable(AttributeError):
    def __init__(self) -> None:
        super().__init__("No data available")


class ReadOnlyAttribute(AttributeError):
    def __init__(self) -> None:
        super().__init__("etherinfo member values are read-only")
