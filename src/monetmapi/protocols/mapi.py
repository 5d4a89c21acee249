import logging

from monetmapi.codec import BlockCodec, MAX_PAYLOAD
from monetmapi.errors import DecodeError, MapiConnectionError, ProtocolError
from .base import BaseStreamProtocol

logger = logging.getLogger(__name__)


class MapiStreamProtocol(BaseStreamProtocol):
    """
    The MAPI protocol carries text messages, called blocks, over a stream as
    a sequence of chunks. Chunk framing is added and removed by this protocol
    using a :class:`monetmapi.codec.BlockCodec`.

    Upon extracting a complete block from the stream the protocol passes the
    block text to the on_message handler.

    A block that can not be decoded leaves the stream in an unknown state.
    The error is passed to the on_error handler and the connection is closed.

    The protocol does no more than framing. Login and any other session
    level exchange happens above it.
    """

    def __init__(
        self,
        on_message=None,
        on_peer_available=None,
        on_peer_unavailable=None,
        on_error=None,
        max_payload: int = MAX_PAYLOAD,
        **kwargs,
    ):
        super().__init__(
            on_message=on_message,
            on_peer_available=on_peer_available,
            on_peer_unavailable=on_peer_unavailable,
            on_error=on_error,
        )
        self._buffer = bytearray()
        self._codec = BlockCodec(max_payload=max_payload)
        self._failed = False

    def send(self, message: str, **kwargs):  # pylint: disable=arguments-differ
        """ Sends a message by encoding it as a block and writing it to the
        transport.

        :param message: the message text.
        """
        if not isinstance(message, str):
            logger.error(
                f"message must be str - can't send message. message={type(message)}"
            )
            return

        if self.transport is None:
            raise MapiConnectionError("Can't send message, not connected")

        msg = bytearray()
        self._codec.encode(message, msg)

        logger.debug(f"Sending block with {len(msg)} bytes")

        self.transport.write(bytes(msg))

    def data_received(self, data):
        """ Process some bytes received from the transport.

        Received bytes are added to a buffer and then every complete block in
        the buffer is extracted. Bytes belonging to an incomplete chunk stay in
        the buffer until the rest of the chunk arrives.

        This method supports the worst case scenario of receiving a single
        byte at a time as well as receiving several blocks at once.
        """
        if self._failed:
            # The stream is unusable, discard anything that arrives while
            # the transport is closing.
            return

        self._buffer.extend(data)

        try:
            for block in self._codec.decode_all(self._buffer):
                # Don't let user code break the library
                try:
                    if self._on_message_handler:
                        self._on_message_handler(self, self._identity, block)
                except Exception:
                    logger.exception("Error in on_message callback method")
        except (DecodeError, ProtocolError) as exc:
            self._failed = True
            self.fail(exc)
