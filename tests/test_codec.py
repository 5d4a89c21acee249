import unittest

from monetmapi.codec import (
    CHUNK_HEADER_SIZE,
    MAX_PAYLOAD,
    BlockCodec,
    CodecStates,
    pack_header,
    unpack_header,
)
from monetmapi.errors import DecodeError, ProtocolError


def encode(message: str, max_payload: int = MAX_PAYLOAD) -> bytearray:
    buf = bytearray()
    BlockCodec(max_payload=max_payload).encode(message, buf)
    return buf


class ChunkHeaderTestCase(unittest.TestCase):
    def test_header_is_little_endian_length_and_last_flag(self):
        self.assertEqual(pack_header(19, True), b"\x27\x00")
        self.assertEqual(pack_header(19, False), b"\x26\x00")
        self.assertEqual(pack_header(0, True), b"\x01\x00")
        self.assertEqual(pack_header(MAX_PAYLOAD, False), b"\xfc\x3f")

    def test_unpack_header(self):
        self.assertEqual(unpack_header(b"\x27\x00"), (19, True))
        self.assertEqual(unpack_header(b"\xfc\x3f"), (MAX_PAYLOAD, False))
        # Captured from a real server response
        self.assertEqual(unpack_header(bytes([223, 5])), (751, True))


class BlockCodecEncodeTestCase(unittest.TestCase):
    def test_max_payload(self):
        self.assertEqual(MAX_PAYLOAD, 8190)

    def test_invalid_max_payload_is_rejected(self):
        for value in (0, -1, MAX_PAYLOAD + 1):
            with self.subTest(value=value):
                with self.assertRaises(ValueError):
                    BlockCodec(max_payload=value)

    def test_encode_simple_message(self):
        buf = encode("this is test output")
        self.assertEqual(
            bytes(buf),
            bytes(
                [39, 0, 116, 104, 105, 115, 32, 105, 115, 32, 116, 101, 115, 116, 32]
                + [111, 117, 116, 112, 117, 116]
            ),
        )

    def test_encode_this_is_test_input(self):
        message = "this is test input"
        buf = encode(message)
        length = len(message.encode("utf-8"))
        self.assertEqual(bytes(buf[:CHUNK_HEADER_SIZE]), pack_header(length, True))
        self.assertEqual(bytes(buf[CHUNK_HEADER_SIZE:]), message.encode("ascii"))

    def test_encode_appends_to_buffer(self):
        buf = bytearray(b"xyz")
        BlockCodec().encode("a", buf)
        self.assertEqual(bytes(buf), b"xyz\x03\x00a")

    def test_encode_empty_message(self):
        self.assertEqual(bytes(encode("")), b"\x01\x00")

    def test_encode_exact_multiple_of_max_payload_ends_with_empty_chunk(self):
        message = "a" * MAX_PAYLOAD
        buf = encode(message)
        self.assertEqual(len(buf), MAX_PAYLOAD + 2 * CHUNK_HEADER_SIZE)
        self.assertEqual(bytes(buf[:CHUNK_HEADER_SIZE]), pack_header(MAX_PAYLOAD, False))
        self.assertEqual(bytes(buf[-CHUNK_HEADER_SIZE:]), pack_header(0, True))

    def test_encode_message_larger_than_max_payload(self):
        message = "a" * (MAX_PAYLOAD + 1)
        buf = encode(message)
        self.assertEqual(len(buf), MAX_PAYLOAD + 1 + 2 * CHUNK_HEADER_SIZE)
        self.assertEqual(bytes(buf[:CHUNK_HEADER_SIZE]), pack_header(MAX_PAYLOAD, False))
        second = MAX_PAYLOAD + CHUNK_HEADER_SIZE
        self.assertEqual(
            bytes(buf[second : second + CHUNK_HEADER_SIZE]), pack_header(1, True)
        )

    def test_encode_with_forced_chunks(self):
        buf = encode("abcdefghij", max_payload=4)
        self.assertEqual(bytes(buf), b"\x08\x00abcd\x08\x00efgh\x05\x00ij")

    def test_encode_is_deterministic(self):
        self.assertEqual(encode("déjà vu"), encode("déjà vu"))

    def test_encode_rejects_non_text(self):
        with self.assertRaises(TypeError):
            BlockCodec().encode(b"bytes", bytearray())


class BlockCodecDecodeTestCase(unittest.TestCase):
    def test_decode_simple_input(self):
        message = "this is test input"
        buf = bytearray(pack_header(len(message), True) + message.encode("ascii"))
        codec = BlockCodec()
        self.assertEqual(codec.decode(buf), message)
        self.assertEqual(len(buf), 0)
        self.assertEqual(codec.state, CodecStates.WAIT_HEADER)

    def test_decode_with_insufficient_header(self):
        buf = bytearray(b"\x27")
        codec = BlockCodec()
        self.assertIsNone(codec.decode(buf))
        self.assertEqual(bytes(buf), b"\x27")
        self.assertEqual(codec.state, CodecStates.WAIT_HEADER)

    def test_decode_with_empty_buffer(self):
        buf = bytearray()
        codec = BlockCodec()
        self.assertIsNone(codec.decode(buf))
        self.assertEqual(codec.state, CodecStates.WAIT_HEADER)

    def test_decode_with_insufficient_payload(self):
        message = "this is test input"
        data = message.encode("ascii")
        buf = bytearray(pack_header(len(data), True) + data[:5])
        codec = BlockCodec()
        self.assertIsNone(codec.decode(buf))

        # The header is consumed, the partial payload is not
        self.assertEqual(bytes(buf), data[:5])
        self.assertEqual(codec.state, CodecStates.WAIT_PAYLOAD)

        # Calling again without new data changes nothing
        self.assertIsNone(codec.decode(buf))
        self.assertEqual(bytes(buf), data[:5])

        buf.extend(data[5:])
        self.assertEqual(codec.decode(buf), message)
        self.assertEqual(len(buf), 0)

    def test_decode_with_length_too_long(self):
        message = "this is test input"
        data = message.encode("ascii")
        buf = bytearray(pack_header(len(data) + 1, True) + data)
        codec = BlockCodec()
        self.assertIsNone(codec.decode(buf))
        self.assertEqual(bytes(buf), data)

    def test_decode_real_input(self):
        payload = (
            "&1 18 0 22 0\n"
            "% .L50,\t.L52 # table_name\n"
            "% TABLE_CAT,\tTABLE_SCHEM # name\n"
            "% char,\tvarchar # type\n"
            "% 3,\t0 # length\n"
        )
        data = payload.encode("utf-8")
        buf = bytearray(pack_header(len(data), True))
        codec = BlockCodec()
        self.assertIsNone(codec.decode(buf))
        buf.extend(data)
        self.assertEqual(codec.decode(buf), payload)

    def test_decode_empty_block(self):
        codec = BlockCodec()
        self.assertEqual(codec.decode(bytearray(b"\x01\x00")), "")

    def test_decode_forced_chunks(self):
        buf = encode("abcdefghij", max_payload=4)
        codec = BlockCodec(max_payload=4)

        # One chunk is extracted per call
        self.assertIsNone(codec.decode(buf))
        self.assertIsNone(codec.decode(buf))
        self.assertEqual(codec.decode(buf), "abcdefghij")
        self.assertEqual(len(buf), 0)

    def test_decode_multibyte_characters_split_across_chunks(self):
        message = "ééééé"
        buf = encode(message, max_payload=3)
        codec = BlockCodec(max_payload=3)
        self.assertEqual(list(codec.decode_all(buf)), [message])

    def test_decode_invalid_utf8_raises(self):
        buf = bytearray(pack_header(2, True) + b"\xff\xfe")
        codec = BlockCodec()
        with self.assertRaises(DecodeError):
            codec.decode(buf)

    def test_decode_invalid_utf8_in_later_chunk_raises(self):
        buf = bytearray(pack_header(2, False) + b"ok" + pack_header(1, True) + b"\x80")
        codec = BlockCodec()
        self.assertIsNone(codec.decode(buf))
        with self.assertRaises(DecodeError):
            codec.decode(buf)

    def test_decode_oversized_chunk_raises(self):
        buf = bytearray(pack_header(MAX_PAYLOAD + 1, True))
        with self.assertRaises(ProtocolError):
            BlockCodec().decode(buf)

        buf = bytearray(pack_header(5, True) + b"abcde")
        with self.assertRaises(ProtocolError):
            BlockCodec(max_payload=4).decode(buf)

    def test_decode_all_extracts_every_block(self):
        buf = encode("first") + encode("second") + encode("third")[:-2]
        codec = BlockCodec()
        self.assertEqual(list(codec.decode_all(buf)), ["first", "second"])
        self.assertEqual(codec.state, CodecStates.WAIT_PAYLOAD)

        buf.extend(b"rd")
        self.assertEqual(list(codec.decode_all(buf)), ["third"])
        self.assertEqual(len(buf), 0)

    def test_decode_leaves_following_bytes_in_buffer(self):
        buf = encode("first") + b"\x09"
        codec = BlockCodec()
        self.assertEqual(codec.decode(buf), "first")
        self.assertEqual(bytes(buf), b"\x09")

    def test_reset_discards_partial_block(self):
        codec = BlockCodec(max_payload=4)
        buf = encode("abcdefghij", max_payload=4)
        self.assertIsNone(codec.decode(buf))
        codec.reset()
        self.assertEqual(codec.state, CodecStates.WAIT_HEADER)
        self.assertEqual(codec.decode(bytearray(b"\x03\x00z")), "z")


class BlockCodecRoundTripTestCase(unittest.TestCase):
    def test_round_trip_boundary_lengths(self):
        lengths = (
            0,
            1,
            MAX_PAYLOAD - 1,
            MAX_PAYLOAD,
            MAX_PAYLOAD + 1,
            2 * MAX_PAYLOAD,
        )
        for length in lengths:
            with self.subTest(length=length):
                message = "m" * length
                buf = encode(message)
                codec = BlockCodec()
                self.assertEqual(list(codec.decode_all(buf)), [message])
                self.assertEqual(len(buf), 0)

    def test_partial_delivery_at_every_split_point(self):
        message = "this is test input"
        data = bytes(encode(message))
        for split in range(len(data) + 1):
            with self.subTest(split=split):
                codec = BlockCodec()
                buf = bytearray(data[:split])
                first = codec.decode(buf)
                if split < len(data):
                    self.assertIsNone(first)
                    buf.extend(data[split:])
                    self.assertEqual(codec.decode(buf), message)
                else:
                    self.assertEqual(first, message)

    def test_partial_delivery_of_multi_chunk_block(self):
        message = "x" * (MAX_PAYLOAD + 10)
        data = bytes(encode(message))
        splits = (
            1,
            2,
            3,
            MAX_PAYLOAD + 1,
            MAX_PAYLOAD + 2,
            MAX_PAYLOAD + 3,
            len(data) - 1,
        )
        for split in splits:
            with self.subTest(split=split):
                codec = BlockCodec()
                buf = bytearray(data[:split])
                self.assertEqual(list(codec.decode_all(buf)), [])
                buf.extend(data[split:])
                self.assertEqual(list(codec.decode_all(buf)), [message])

    def test_single_byte_delivery(self):
        message = "abcdefghijklmnopqrstuvwxyz"
        data = bytes(encode(message, max_payload=7))
        codec = BlockCodec(max_payload=7)
        buf = bytearray()
        received = []
        for b in data:
            buf.append(b)
            received.extend(codec.decode_all(buf))
        self.assertEqual(received, [message])


if __name__ == "__main__":
    unittest.main()
