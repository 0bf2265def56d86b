"""
Classification of reply codes.

The second digit of a reply code encodes its function group (RFC 959,
section 4.2.1)::

    x0z   Syntax - syntax errors, syntactically correct commands that don't
          fit any functional category, unimplemented or superfluous commands.
    x1z   Information - replies to requests for information, such as status
          or help.
    x2z   Connections - replies referring to the control and data
          connections.
    x3z   Authentication and accounting - replies for the login process and
          accounting procedures.
    x4z   Unspecified as yet.
    x5z   File system - status of the server file system vis-a-vis the
          requested transfer or other file system action.

:data:`REPLY_OUTCOMES` maps every group to the codes that complete a command
successfully and what they complete it with. Everything else is an error.
"""

from __future__ import annotations

import re
from enum import Enum, IntEnum


class ReplyGroup(IntEnum):
    SYNTAX = 0
    INFORMATION = 1
    CONNECTIONS = 2
    AUTHENTICATION = 3
    UNSPECIFIED = 4
    FILE_SYSTEM = 5


class Outcome(Enum):
    #: bare success, the continuation gets ``None``
    DONE = "done"
    #: success carrying the reply text
    TEXT = "text"
    #: the data connection must be opened before completing
    PASSIVE = "passive"
    #: ``True``, the server wants a password
    PASSWORD_REQUIRED = "password_required"
    #: ``False``, the user is logged in
    LOGGED_IN = "logged_in"
    #: success carrying the double-quoted path of the reply
    PATH = "path"
    ERROR = "error"


REPLY_OUTCOMES: dict[ReplyGroup, dict[int, Outcome]] = {
    ReplyGroup.SYNTAX: {200: Outcome.DONE},
    ReplyGroup.INFORMATION: {code: Outcome.TEXT for code in range(211, 216)},
    ReplyGroup.CONNECTIONS: {226: Outcome.DONE, 227: Outcome.PASSIVE},
    ReplyGroup.AUTHENTICATION: {
        331: Outcome.PASSWORD_REQUIRED,
        230: Outcome.LOGGED_IN,
    },
    ReplyGroup.UNSPECIFIED: {},
    ReplyGroup.FILE_SYSTEM: {
        250: Outcome.DONE,
        350: Outcome.DONE,
        257: Outcome.PATH,
    },
}

_QUOTED_PATH_RE = re.compile(r'(?:^|\s)"(.*)"(?:$|\s)')


def is_preliminary(code: int) -> bool:
    """1yz replies announce that another reply will follow"""
    return code < 200


def classify(code: int) -> Outcome:
    if code >= 500:
        return Outcome.ERROR
    try:
        group = ReplyGroup(code // 10 % 10)
    except ValueError:
        return Outcome.ERROR
    return REPLY_OUTCOMES[group].get(code, Outcome.ERROR)


def parse_quoted_path(text: str) -> str:
    """Return the path of a 257 reply.

    Embedded quotes are doubled inside the quoted path::

        257 "/usr/""quoted"" dir" created

    becomes ``/usr/"quoted" dir``. Unquoted text is returned as-is.
    """
    match = _QUOTED_PATH_RE.search(text)
    if match is None:
        return text
    return match.group(1).replace('""', '"')
