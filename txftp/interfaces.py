from zope.interface import Interface


class IDataStream(Interface):
    """A live data connection handed out by a completed PASV command"""

    def set_consumer(consumer):
        """Call ``consumer`` with every chunk of received bytes. Chunks
        received before a consumer is set are replayed to it."""

    def write(data):
        """Send bytes to the server"""

    def finish():
        """Close the sending side once pending writes are flushed"""

    def abort():
        """Drop the connection immediately"""

    def when_closed():
        """Return a Deferred fired with None when the connection closes
        cleanly, or with the failure that closed it"""
