import asyncio
import binascii
import logging
import os

from typing import Optional, Tuple, Union


logger = logging.getLogger(__name__)


AddressType = Union[Tuple[str, int], str]


class BaseStreamProtocol(asyncio.Protocol):
    """
    This class implements the callback plumbing shared by stream protocols.

    It does not extract messages from the stream. Any received bytes are
    passed straight to the message handler callback. Subclasses implement the
    framing.
    """

    def __init__(
        self,
        on_message=None,
        on_peer_available=None,
        on_peer_unavailable=None,
        on_error=None,
        **kwargs,
    ):
        """

        :param on_message: A callback function that will be passed each message
          that the protocol extracts from the stream.

        :param on_peer_available: A callback function that will be called when
          the protocol is connected with a transport. In this state the protocol
          can send and receive messages.

        :param on_peer_unavailable: A callback function that will be called when
          the protocol has lost the connection with its transport. In this state
          the protocol can not send or receive messages.

        :param on_error: A callback function that will be passed any error
          that makes the stream unusable, just before the protocol closes the
          connection.
        """
        self._on_message_handler = on_message
        self._on_peer_available_handler = on_peer_available
        self._on_peer_unavailable_handler = on_peer_unavailable
        self._on_error_handler = on_error
        self._remote_address = None  # type: Optional[AddressType]
        self._local_address = None  # type: Optional[AddressType]
        self._identity = b""

        self.transport = None

    @property
    def raddr(self) -> Optional[AddressType]:
        """ Return the remote address the protocol is connected with """
        return self._remote_address

    @property
    def laddr(self) -> Optional[AddressType]:
        """ Return the local address the protocol is using """
        return self._local_address

    @property
    def identity(self):
        """ Return the protocol's unique identifier, used in log messages """
        return self._identity

    def connection_made(self, transport):
        """
        Called by the event loop when the protocol is connected with a transport.
        """
        self.transport = transport

        # TCP sockets report a (host, port) 2-tuple for IPv4 or a 4-tuple
        # for IPv6. Unix domain sockets report the socket path.
        def get_address(info) -> Optional[AddressType]:
            if isinstance(info, tuple) and len(info) == 4:
                host, port, _flowinfo, _scopeid = info
                info = (host, port)
            return info

        self._remote_address = get_address(transport.get_extra_info("peername"))
        self._local_address = get_address(transport.get_extra_info("sockname"))
        self._identity = binascii.hexlify(os.urandom(5))

        logger.debug(
            f"Connection made. id={self._identity}, "
            f"laddr={self._local_address}, "
            f"raddr={self._remote_address}"
        )

        # Don't let user code break the library
        try:
            if self._on_peer_available_handler:
                self._on_peer_available_handler(self, self._identity)
        except Exception:
            logger.exception("Error in on_peer_available callback method")

    def connection_lost(self, exc):
        """
        Called by the event loop when the protocol is disconnected from a transport.
        """
        logger.debug(
            f"Connection lost. id={self._identity}, "
            f"laddr={self._local_address}, "
            f"raddr={self._remote_address}, "
            f"reason={exc}"
        )

        # Don't let user code break the library
        try:
            if self._on_peer_unavailable_handler:
                self._on_peer_unavailable_handler(self, self._identity)
        except Exception:
            logger.exception("Error in on_peer_unavailable callback method")

        if self.transport:
            self.transport.close()

        self.transport = None
        self._remote_address = None
        self._local_address = None

    def close(self):
        """
        Close this connection.
        """
        logger.debug(
            f"Closing connection. id={self._identity}, "
            f"laddr={self._local_address}, raddr={self._remote_address}"
        )

        if self.transport:
            self.transport.close()

    def fail(self, exc: Exception):
        """ Report an unrecoverable stream error and close the connection.

        :param exc: The exception describing the error.
        """
        logger.error(f"Stream error on connection {self._identity}: {exc}")

        # Don't let user code break the library
        try:
            if self._on_error_handler:
                self._on_error_handler(self, self._identity, exc)
        except Exception:
            logger.exception("Error in on_error callback method")

        self.close()

    def data_received(self, data):
        """ Process some bytes received from the transport."""
        # Don't let user code break the library
        try:
            if self._on_message_handler:
                self._on_message_handler(self, self._identity, data)
        except Exception:
            logger.exception("Error in on_message callback method")
