"""
txftp - an event-driven FTP client for Twisted
"""

import pkgutil
import warnings

# Declare top-level shortcuts
from txftp.client import FTPClient, FTPClientFactory
from txftp.filesystem import FTPFileSystem
from txftp.listing import ListingEntry, ListingStream, NodeType
from txftp.settings import Settings

__all__ = [
    "FTPClient",
    "FTPClientFactory",
    "FTPFileSystem",
    "ListingEntry",
    "ListingStream",
    "NodeType",
    "Settings",
    "__version__",
    "version_info",
]


__version__ = (pkgutil.get_data(__package__, "VERSION") or b"").decode("ascii").strip()
version_info = tuple(int(v) if v.isdigit() else v for v in __version__.split("."))


# Ignore noisy twisted deprecation warnings
warnings.filterwarnings("ignore", category=DeprecationWarning, module="twisted")


del pkgutil
del warnings
