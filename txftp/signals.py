"""
txftp session signals

Every signal is sent by the control protocol of the session it belongs to,
so receivers connected through ``protocol.signals`` only hear about their
own session. The keyword arguments each signal sends are listed next to it.
"""

session_connected = object()
features_discovered = object()  # features
session_authorized = object()
command_sent = object()  # command
reply_received = object()  # record
session_timeout = object()  # error
session_closed = object()  # reason
