from __future__ import annotations

import gzip
import io

import pytest

from slotfeed.decode import ContentDecoder, ReadCounters
from slotfeed.errors import DecodeFailure

SAMPLE = "".join(f"LINE {idx:03d} - 20161201\n" for idx in range(1, 6)).encode("utf-8")


def test_plain_content_yields_lines_without_terminators() -> None:
    lines = list(ContentDecoder().decode(SAMPLE))

    assert lines == [f"LINE {idx:03d} - 20161201" for idx in range(1, 6)]


def test_gzip_content_decodes_to_the_same_lines() -> None:
    decoder = ContentDecoder()
    plain_counters = ReadCounters()
    gzip_counters = ReadCounters()

    plain = list(decoder.decode(SAMPLE, plain_counters))
    compressed = list(decoder.decode(gzip.compress(SAMPLE), gzip_counters))

    assert compressed == plain
    assert gzip_counters.records_read == plain_counters.records_read == 5
    assert gzip_counters.bytes_read == plain_counters.bytes_read == len(SAMPLE)


def test_final_line_without_terminator_is_emitted() -> None:
    assert list(ContentDecoder().decode(b"first\r\nsecond\rthird")) == ["first", "second", "third"]


def test_empty_and_tiny_payloads() -> None:
    decoder = ContentDecoder()

    assert list(decoder.decode(b"")) == []
    assert list(decoder.decode(b"\x1f")) == ["\x1f"]
    assert list(decoder.decode(b"\n\n")) == ["", ""]


def test_open_does_not_consume_sniffed_bytes() -> None:
    stream = ContentDecoder().open(io.BytesIO(b"\x1fabc"))

    assert stream.read() == b"\x1fabc"


def test_configured_charset_is_used() -> None:
    payload = "café\nnaïve\n".encode("latin-1")

    assert list(ContentDecoder(charset="latin-1").decode(payload)) == ["café", "naïve"]


def test_replace_mode_keeps_undecodable_bytes_readable() -> None:
    assert list(ContentDecoder().decode(b"ok\n\xff\xfe\n")) == ["ok", "\ufffd\ufffd"]


def test_strict_mode_reports_undecodable_text() -> None:
    with pytest.raises(DecodeFailure):
        list(ContentDecoder(errors="strict").decode(b"ok\n\xff\xfe\n"))


@pytest.mark.parametrize(
    "payload",
    [
        gzip.compress(SAMPLE)[:20],
        b"\x1f\x8b" + b"not really gzip at all",
    ],
)
def test_malformed_gzip_raises_decode_failure(payload: bytes) -> None:
    with pytest.raises(DecodeFailure):
        list(ContentDecoder().decode(payload))


def test_stream_is_closed_after_iteration_and_on_early_close() -> None:
    exhausted = io.BytesIO(SAMPLE)
    list(ContentDecoder().iter_lines(exhausted))
    assert exhausted.closed

    abandoned = io.BytesIO(SAMPLE)
    lines = ContentDecoder().iter_lines(abandoned)
    assert next(lines) == "LINE 001 - 20161201"
    lines.close()
    assert abandoned.closed
