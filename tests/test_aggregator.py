import pytest

from conftest import RecordingLogSink
from ipptransform.aggregator import OutputAggregator, Stream
from ipptransform.sinks import BufferDocumentSink, FileDocumentSink, LogLevel


@pytest.fixture
def sinks():
    return BufferDocumentSink(), RecordingLogSink()


def test_stdout_chunks_appended_in_order(sinks):
    document, log = sinks
    agg = OutputAggregator(document, log)
    chunks = [b"a" * 4096, b"b" * 4096, b"c" * 2000]

    for chunk in chunks:
        agg.feed(Stream.STDOUT, chunk)
    agg.close()

    assert document.getvalue() == b"".join(chunks)
    assert len(document.getvalue()) == 10192
    assert agg.document_bytes == 10192
    assert document.finalized
    assert log.lines == []


def test_partial_stderr_line_flushed_at_eof(sinks):
    document, log = sinks
    agg = OutputAggregator(document, log)

    agg.feed(Stream.STDERR, b"line1\nline2")
    assert log.texts() == ["line1"]
    agg.end(Stream.STDERR)

    assert log.lines == [(LogLevel.DEBUG, "line1"), (LogLevel.DEBUG, "line2")]
    assert document.getvalue() == b""


def test_lines_split_across_reads(sinks):
    document, log = sinks
    agg = OutputAggregator(document, log, severity=LogLevel.INFO)

    for piece in (b"INFO: sta", b"rting\nDEBUG: x", b"\n\n"):
        agg.feed(Stream.STDERR, piece)
    agg.close()

    assert log.texts(LogLevel.INFO) == ["INFO: starting", "DEBUG: x", ""]


def test_long_line_flushed_in_pieces(sinks):
    document, log = sinks
    agg = OutputAggregator(document, log, max_line=8)

    agg.feed(Stream.STDERR, b"0123456789abcdefXYZ")
    agg.close()

    assert log.texts() == ["01234567", "89abcdef", "XYZ"]


def test_long_line_split_keeps_characters_whole(sinks):
    document, log = sinks
    agg = OutputAggregator(document, log, max_line=8)

    agg.feed(Stream.STDERR, "aéééé".encode())
    agg.close()

    assert log.texts() == ["aééé", "é"]
    assert "".join(log.texts()) == "aéééé"


def test_carriage_return_is_kept(sinks):
    document, log = sinks
    agg = OutputAggregator(document, log)

    agg.feed(Stream.STDERR, b"INFO: crlf\r\n")

    assert log.texts() == ["INFO: crlf\r"]


def test_invalid_utf8_is_replaced(sinks):
    document, log = sinks
    agg = OutputAggregator(document, log)

    agg.feed(Stream.STDERR, b"bad \xff byte\n")

    assert log.texts() == ["bad � byte"]


def test_close_is_idempotent_and_file_sink_finalized(tmp_path):
    log = RecordingLogSink()
    sink = FileDocumentSink(tmp_path / "out" / "doc.bin")
    agg = OutputAggregator(sink, log)

    agg.feed(Stream.STDOUT, b"%PDF-1.7")
    agg.feed(Stream.STDERR, b"tail")
    agg.close()
    agg.close()

    assert (tmp_path / "out" / "doc.bin").read_bytes() == b"%PDF-1.7"
    assert log.texts() == ["tail"]
    with pytest.raises(ValueError):
        sink.append(b"more")


def test_file_sink_without_output_creates_no_file(tmp_path):
    sink = FileDocumentSink(tmp_path / "doc.bin")
    sink.finalize()

    assert not sink.exists
    assert not (tmp_path / "doc.bin").exists()
