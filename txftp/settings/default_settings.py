"""This module contains the default values for all settings used by txftp.

txftp developers, if you add a setting here remember to:

* add it in alphabetical order, with the exception that enabling flags and
  other high-level settings for a group should come first in their group
  and pairs like host/port and user/password should be in the usual order
* group similar settings without leaving blank lines
"""

__all__ = [
    "FTP_CONNECT_TIMEOUT",
    "FTP_ENCODING",
    "FTP_HOST",
    "FTP_IDLE_TIMEOUT",
    "FTP_PASSWORD",
    "FTP_PORT",
    "FTP_TZ_HOUR_DIFF",
    "FTP_USER",
    "LOG_DATEFORMAT",
    "LOG_ENABLED",
    "LOG_ENCODING",
    "LOG_FILE",
    "LOG_FILE_APPEND",
    "LOG_FORMAT",
    "LOG_LEVEL",
    "LOG_SHORT_NAMES",
]

FTP_HOST = "localhost"
FTP_PORT = 21
FTP_USER = "anonymous"
FTP_PASSWORD = "anonymous@"  # noqa: S105
FTP_CONNECT_TIMEOUT = 10  # seconds, control and passive data connects
FTP_ENCODING = "utf-8"
FTP_IDLE_TIMEOUT = 60  # seconds, keepalive fires 10 seconds earlier
FTP_TZ_HOUR_DIFF = 0

LOG_ENABLED = True
LOG_DATEFORMAT = "%Y-%m-%d %H:%M:%S"
LOG_ENCODING = "utf-8"
LOG_FILE = None
LOG_FILE_APPEND = True
LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"
LOG_LEVEL = "DEBUG"
LOG_SHORT_NAMES = False
