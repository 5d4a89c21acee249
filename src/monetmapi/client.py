"""
This module contains the MAPI client. A client connection sends a textual
request to a MonetDB server and waits for the textual response.

Requests are never pipelined. A connection allows a single request to be in
flight at a time and any other caller waits its turn, so the N-th response
always belongs to the N-th request.
"""

import asyncio
import logging

from asyncio import AbstractEventLoop
from typing import Awaitable, Callable, Optional
from .config import Config
from .errors import MapiConnectionError, raise_for_error
from .protocols.mapi import MapiStreamProtocol

logger = logging.getLogger(__name__)


HandshakeType = Callable[["Connection"], Awaitable[None]]


class Connection:
    """
    A session with a MonetDB server over a single MAPI stream.

    Use :func:`connect` to create a ready to use connection.
    """

    protocol_class = MapiStreamProtocol

    def __init__(self, config: Config = None, loop: AbstractEventLoop = None):
        """
        :param config: The connection settings. Default settings are used if
          not supplied.

        :param loop: The event loop to run in. The running loop is used if
          not supplied.
        """
        self.loop = loop
        self.config = config if config else Config()
        self._protocol = None  # type: Optional[MapiStreamProtocol]
        self._lock = asyncio.Lock()
        self._response = None  # type: Optional[asyncio.Future]
        self._closed = None  # type: Optional[asyncio.Future]

    @property
    def connected(self) -> bool:
        """ Return True if the connection can carry requests """
        return self._protocol is not None

    async def __aenter__(self) -> "Connection":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def _protocol_factory(self):
        """ Return a protocol instance to handle the connection """
        return self.protocol_class(
            on_message=self.on_message,
            on_peer_available=self.on_peer_available,
            on_peer_unavailable=self.on_peer_unavailable,
            on_error=self.on_error,
        )

    async def open(self) -> None:
        """ Open the transport to the configured server.

        :raises MapiConnectionError: if the transport can not be established.
        """
        if self.connected:
            return

        if self.loop is None:
            self.loop = asyncio.get_running_loop()

        url = self.config.url
        logger.debug(f"Connecting to {url}")

        self._closed = self.loop.create_future()
        try:
            if self.config.socket:
                _transport, _protocol = await self.loop.create_unix_connection(
                    self._protocol_factory, path=self.config.socket
                )
            else:
                host, port = self.config.address
                _transport, _protocol = await self.loop.create_connection(
                    self._protocol_factory, host=host, port=port
                )
        except (ConnectionRefusedError, OSError) as exc:
            # When connecting to "localhost", some systems try to connect to
            # both 127.0.0.1 and ::1 resulting in an OSError(Multiple errors
            # occurred) that wraps two ConnectionRefusedErrors
            logger.error(f"Connection to {url} failed: {exc}")
            self._closed = None
            raise MapiConnectionError(f"Can't connect to {url}") from exc

        # Upon a successful connection the protocol has already called the
        # on_peer_available method which stored the protocol.
        logger.debug(f"Connected to {url}")

    async def close(self) -> None:
        """ Close the connection.

        A request waiting for its response fails with MapiConnectionError.
        """
        if self._protocol:
            self._protocol.close()
        if self._closed:
            await self._closed
        self._closed = None

    async def call(self, request: str, *, check_error: bool = False) -> str:
        """ Send a request and wait for its response.

        :param request: The request text.

        :param check_error: When True a response holding a server error
          message is raised as the matching
          :class:`monetmapi.errors.DatabaseError` subclass instead of being
          returned.

        :raises MapiConnectionError: if the connection is closed or is lost
          before the response arrives.

        :raises DecodeError: if the response is not valid UTF-8 text.

        :raises ProtocolError: if the response violates the chunk framing.
        """
        if not isinstance(request, str):
            raise TypeError(f"request must be str, got {type(request)}")

        async with self._lock:
            if self._protocol is None:
                raise MapiConnectionError("Connection is closed")

            self._response = self.loop.create_future()
            try:
                self._protocol.send(request)
                try:
                    response = await self._response
                except asyncio.CancelledError:
                    # The request is already on the wire. Its late response
                    # must never reach the next request.
                    logger.warning("Call cancelled, closing connection")
                    if self._protocol:
                        self._protocol.close()
                    self._protocol = None
                    raise
            finally:
                self._response = None

        if check_error:
            raise_for_error(response)
        return response

    def _fail_pending_response(self, exc: Exception) -> None:
        if self._response is not None and not self._response.done():
            self._response.set_exception(exc)

    def on_peer_available(self, prot, peer_id: bytes):
        """ Called from the protocol instance when its transport is available.
        """
        self._protocol = prot

    def on_peer_unavailable(self, prot, peer_id: bytes):
        """ Called from the protocol instance when its transport is no longer
        available.
        """
        self._protocol = None
        self._fail_pending_response(MapiConnectionError("Connection lost"))
        if self._closed is not None and not self._closed.done():
            self._closed.set_result(None)

    def on_error(self, prot, peer_id: bytes, exc: Exception):
        """ Called from the protocol instance when the stream can no longer be
        decoded. The protocol closes the connection afterwards.
        """
        self._fail_pending_response(exc)

    def on_message(self, prot, peer_id: bytes, block: str) -> None:
        """ Called by the protocol when it extracts a block from the stream.
        """
        if self._response is None or self._response.done():
            logger.warning(f"Discarding unsolicited block of {len(block)} characters")
            return
        self._response.set_result(block)


async def connect(
    config: Config = None,
    *,
    handshake: HandshakeType = None,
    loop: AbstractEventLoop = None,
) -> Connection:
    """ Open a connection to a MonetDB server.

    :param config: The connection settings. Default settings are used if not
      supplied.

    :param handshake: An optional coroutine function that is passed the new
      connection and performs the session login exchange. It runs before the
      connection is returned, so no application request can precede it.

    :param loop: The event loop to run in.

    :raises MapiConnectionError: if the transport can not be established.
    """
    connection = Connection(config, loop=loop)
    await connection.open()

    if handshake:
        try:
            await handshake(connection)
        except BaseException:
            logger.error(f"Handshake with {connection.config.url} failed")
            await connection.close()
            raise

    return connection
