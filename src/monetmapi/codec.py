"""
The MAPI block codec.

A MAPI message, called a block, is transferred as a sequence of chunks. Each
chunk is a small frame header followed by part of the block's payload. The
frame header is a single little-endian uint16 field that packs the number of
payload bytes in the chunk together with a flag that marks the final chunk
of the block.

.. code-block:: console

    +--------------------------------+----------------------+
    |  header                        |  payload             |
    +--------------------------------+----------------------+
    |  length (bits 1-15) | last (0) |  DATA ....           |
    |            uint16 (LE)         |  (length bytes)      |
    +--------------------------------+----------------------+

A chunk carries at most MAX_PAYLOAD bytes. A chunk holding exactly
MAX_PAYLOAD bytes is never the last chunk of a block, so a block whose size
is a multiple of MAX_PAYLOAD ends with an empty chunk that has the last flag
set. The reassembled block payload is UTF-8 encoded text.
"""

import enum
import logging
import struct

from typing import Iterator, Optional
from .errors import DecodeError, ProtocolError

logger = logging.getLogger(__name__)


CHUNK_HEADER_FORMAT = "<H"
CHUNK_HEADER_SIZE = struct.calcsize(CHUNK_HEADER_FORMAT)

MAX_PACKET_SIZE = 1024 * 8
MAX_PAYLOAD = MAX_PACKET_SIZE - CHUNK_HEADER_SIZE


class CodecStates(enum.Enum):
    WAIT_HEADER = 0
    WAIT_PAYLOAD = 1


def pack_header(length: int, last: bool) -> bytes:
    """ Return the chunk frame header for a chunk of ``length`` bytes """
    return struct.pack(CHUNK_HEADER_FORMAT, (length << 1) | int(last))


def unpack_header(header: bytes):
    """ Return a (length, last) 2-tuple extracted from a chunk frame header """
    (flag,) = struct.unpack(CHUNK_HEADER_FORMAT, header)
    return flag >> 1, bool(flag & 1)


class BlockCodec:
    """
    Converts between MAPI blocks (text messages) and the chunked byte stream
    that carries them.

    Decoding is incremental. The decoder is handed a buffer holding the bytes
    received so far and consumes whole chunks from the front of it, keeping
    track of any chunk header it has already read and of the part of the
    block reassembled so far. It never blocks and never consumes a partial
    chunk payload, so it can be called again each time more bytes arrive.

    Encoding holds no state.

    A codec instance must be owned by a single connection.
    """

    def __init__(self, max_payload: int = MAX_PAYLOAD):
        """
        :param max_payload: The maximum number of payload bytes per chunk.
          Defaults to MAX_PAYLOAD, which is what the server expects. Smaller
          values are only useful to exercise multi-chunk blocks.
        """
        if not 1 <= max_payload <= MAX_PAYLOAD:
            raise ValueError(
                f"max_payload must be between 1 and {MAX_PAYLOAD}, got {max_payload}"
            )
        self.max_payload = max_payload
        self._state = CodecStates.WAIT_HEADER
        self._length = 0
        self._last = False
        self._block = bytearray()

    @property
    def state(self) -> CodecStates:
        """ Return the decoder's current parsing state """
        return self._state

    def reset(self):
        """ Discard any partially decoded block """
        self._state = CodecStates.WAIT_HEADER
        self._length = 0
        self._last = False
        self._block = bytearray()

    def decode(self, buffer: bytearray) -> Optional[str]:
        """ Extract at most one chunk from the front of ``buffer``.

        The chunk header is read as soon as it is available. The chunk payload
        is only taken once all of it is in the buffer.

        :param buffer: The bytes received so far. Consumed bytes are removed
          from the front of the buffer.

        :returns: The block text when the extracted chunk completes a block,
          otherwise None, which means more data is required.

        :raises ProtocolError: if a chunk header declares more than
          ``max_payload`` bytes.

        :raises DecodeError: if a completed block is not valid UTF-8.
        """
        if self._state == CodecStates.WAIT_HEADER:
            if len(buffer) < CHUNK_HEADER_SIZE:
                return None

            length, last = unpack_header(bytes(buffer[:CHUNK_HEADER_SIZE]))
            if length > self.max_payload:
                raise ProtocolError(
                    f"Chunk length ({length}) exceeds maximum chunk "
                    f"payload ({self.max_payload})"
                )
            del buffer[:CHUNK_HEADER_SIZE]
            self._length = length
            self._last = last
            self._state = CodecStates.WAIT_PAYLOAD

        if len(buffer) < self._length:
            return None

        self._block.extend(buffer[: self._length])
        del buffer[: self._length]
        self._state = CodecStates.WAIT_HEADER

        if not self._last:
            return None

        try:
            text = self._block.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecodeError(f"Block is not valid UTF-8: {exc}") from exc

        logger.debug(f"Decoded block with {len(self._block)} bytes")
        self.reset()
        return text

    def decode_all(self, buffer: bytearray) -> Iterator[str]:
        """ Yield every complete block that can be extracted from ``buffer``.

        Chunks are extracted until the buffer no longer holds a complete
        chunk. Any trailing partial chunk is left for a later call.
        """
        while True:
            size = len(buffer)
            state = self._state
            text = self.decode(buffer)
            if text is not None:
                yield text
            elif len(buffer) == size and self._state == state:
                # No progress, wait for more data.
                return

    def encode(self, message: str, buffer: bytearray) -> None:
        """ Append the chunked wire representation of a message to ``buffer``.

        :param message: The complete message text.

        :param buffer: The output buffer to append chunks to.
        """
        if not isinstance(message, str):
            raise TypeError(f"message must be str, got {type(message)}")

        data = message.encode("utf-8")
        view = memoryview(data)
        pos = 0
        while True:
            chunk = view[pos : pos + self.max_payload]
            last = len(chunk) < self.max_payload
            buffer.extend(pack_header(len(chunk), last))
            buffer.extend(chunk)
            pos += len(chunk)
            if last:
                break
