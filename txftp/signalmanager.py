from __future__ import annotations

from typing import Any

from pydispatch import dispatcher

from txftp.utils import signal as _signal


class SignalManager:
    """Signals scoped to one sender, usually a control protocol.

    Receivers connected here only hear signals sent by that sender, so two
    sessions in the same process never see each other's events.
    """

    def __init__(self, sender: Any = dispatcher.Anonymous):
        self.sender: Any = sender

    def connect(self, receiver: Any, signal: Any, **kwargs: Any) -> None:
        """Call ``receiver`` whenever ``signal`` is sent.

        The receiver is only given the keyword arguments it accepts, see
        :mod:`txftp.signals` for what each signal sends. Receivers are held
        through weak references.
        """
        kwargs.setdefault("sender", self.sender)
        dispatcher.connect(receiver, signal, **kwargs)

    def disconnect(self, receiver: Any, signal: Any, **kwargs: Any) -> None:
        kwargs.setdefault("sender", self.sender)
        dispatcher.disconnect(receiver, signal, **kwargs)

    def send_catch_log(self, signal: Any, **kwargs: Any) -> list[tuple[Any, Any]]:
        """Send ``signal``, errors in receivers are logged and not raised"""
        kwargs.setdefault("sender", self.sender)
        return _signal.send_catch_log(signal, **kwargs)

    def disconnect_all(self, signal: Any, **kwargs: Any) -> None:
        kwargs.setdefault("sender", self.sender)
        _signal.disconnect_all(signal, **kwargs)
