import asyncio
import random
import struct

import pytest

from urclient.protocol import wire
from urclient.protocol.types import MessageType, Pose, RobotStateType
from urclient.utils.errors import ProtocolError
from tests.utils.frames import mode_frame, report_frame, state_frame


def _stream() -> bytes:
    frames = [
        state_frame(q=[0.1 * i for i in range(6)], pose=Pose(0.1, 0.2, 0.3, 0.0, 3.14, 0.0)),
        wire.pack_frame(MessageType.MODBUS_INFO, b"\x00" * 17),  # unknown to the client
        report_frame("RG", {"WIDTH": 40.0, "DEPTH": 3.5, "GRIP": "True"}),
        mode_frame(running=True),
        state_frame(q=[-0.1 * i for i in range(6)]),
    ]
    return b"".join(frames)


def _decode_in_chunks(data: bytes, sizes) -> list:
    decoder = wire.PackageDecoder()
    out = []
    pos = 0
    for size in sizes:
        out.extend(decoder.feed(data[pos : pos + size]))
        pos += size
    out.extend(decoder.feed(data[pos:]))
    return out


@pytest.mark.unit
def test_decoding_is_independent_of_chunk_boundaries():
    data = _stream()
    whole = list(wire.PackageDecoder().feed(data))
    assert [p.type for p in whole] == [
        MessageType.ROBOT_STATE,
        MessageType.ROBOT_MESSAGE,
        MessageType.ROBOT_STATE,
        MessageType.ROBOT_STATE,
    ]

    byte_by_byte = _decode_in_chunks(data, [1] * len(data))
    assert byte_by_byte == whole

    rng = random.Random(1234)
    for _ in range(20):
        sizes = []
        remaining = len(data)
        while remaining > 0:
            n = rng.randint(1, 64)
            sizes.append(n)
            remaining -= n
        assert _decode_in_chunks(data, sizes) == whole


@pytest.mark.unit
def test_partial_frame_is_buffered_until_complete():
    frame = mode_frame()
    decoder = wire.PackageDecoder()
    assert list(decoder.feed(frame[:3])) == []
    assert decoder.buffered == 3
    assert list(decoder.feed(frame[3:-1])) == []
    (pkg,) = list(decoder.feed(frame[-1:]))
    assert pkg.type == MessageType.ROBOT_STATE
    assert pkg.length == len(frame)
    assert decoder.buffered == 0


@pytest.mark.unit
def test_unknown_message_types_are_skipped_and_counted():
    decoder = wire.PackageDecoder()
    data = wire.pack_frame(25, b"abc") + wire.pack_frame(5, b"") + mode_frame()
    pkgs = list(decoder.feed(data))
    assert [p.type for p in pkgs] == [MessageType.ROBOT_STATE]
    assert decoder.skipped == 2
    assert decoder.decoded == 1


@pytest.mark.unit
@pytest.mark.parametrize("length", [0, 4])
def test_length_below_header_size_raises(length):
    decoder = wire.PackageDecoder()
    with pytest.raises(ProtocolError):
        list(decoder.feed(struct.pack(">IB", length, 16)))
    assert decoder.buffered == 0


@pytest.mark.unit
def test_length_above_max_frame_raises():
    decoder = wire.PackageDecoder(max_frame_bytes=64)
    with pytest.raises(ProtocolError, match="outside"):
        list(decoder.feed(struct.pack(">IB", 65, 16)))


@pytest.mark.unit
def test_frames_before_a_bad_length_are_still_delivered():
    decoder = wire.PackageDecoder()
    it = decoder.feed(mode_frame() + struct.pack(">IB", 2, 16))
    first = next(it)
    assert first.type == MessageType.ROBOT_STATE
    with pytest.raises(ProtocolError):
        next(it)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_iter_packages_reads_stream_until_eof():
    reader = asyncio.StreamReader()
    data = _stream()
    reader.feed_data(data[:10])
    reader.feed_data(data[10:])
    reader.feed_eof()
    pkgs = [p async for p in wire.iter_packages(reader)]
    assert len(pkgs) == 4


@pytest.mark.unit
def test_iter_subpackages_rejects_overrun():
    good = wire.pack_subpackage(RobotStateType.ROBOT_MODE_DATA, b"\x00" * 4)
    assert [t for t, _ in wire.iter_subpackages(good)] == [0]

    bad = struct.pack(">iB", 100, 1) + b"\x00" * 10
    with pytest.raises(ProtocolError, match="overruns"):
        list(wire.iter_subpackages(bad))

    with pytest.raises(ProtocolError, match="truncated"):
        list(wire.iter_subpackages(good + b"\x00\x00"))
