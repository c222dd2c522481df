import enum

from .sinks import LogLevel


class Stream(enum.Enum):
    STDOUT = "stdout"
    STDERR = "stderr"


class OutputAggregator:
    """Routes filter output: stdout to the document, stderr lines to the log."""

    def __init__(self, document_sink, log_sink, severity: LogLevel = LogLevel.DEBUG, max_line: int = 2048) -> None:
        if max_line < 1:
            raise ValueError("max_line must be >= 1")
        self.document_sink = document_sink
        self.log_sink = log_sink
        self.severity = severity
        self.max_line = max_line
        self.document_bytes = 0
        self.log_lines = 0
        self._line = bytearray()
        self._ended = set()
        self._closed = False

    def feed(self, stream: Stream, data: bytes) -> None:
        if not data:
            return
        if stream is Stream.STDOUT:
            self.document_sink.append(data)
            self.document_bytes += len(data)
            return

        self._line += data
        while True:
            newline = self._line.find(b"\n")
            if newline < 0:
                break
            self._emit(self._line[:newline])
            del self._line[: newline + 1]
        while len(self._line) > self.max_line:
            cut = self._split_point()
            self._emit(self._line[:cut])
            del self._line[:cut]

    def end(self, stream: Stream) -> None:
        if stream in self._ended:
            return
        self._ended.add(stream)
        if stream is Stream.STDERR and self._line:
            self._emit(self._line)
            self._line.clear()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.end(Stream.STDOUT)
        self.end(Stream.STDERR)
        self.document_sink.finalize()

    def _emit(self, raw: bytes) -> None:
        text = bytes(raw).decode("utf-8", errors="replace")
        self.log_sink.write_line(self.severity, text)
        self.log_lines += 1

    def _split_point(self) -> int:
        # Back off to a UTF-8 lead byte so a character is never cut in two.
        cut = self.max_line
        while cut > 0 and cut > self.max_line - 4 and self._line[cut] & 0xC0 == 0x80:
            cut -= 1
        if cut == 0 or self._line[cut] & 0xC0 == 0x80:
            return self.max_line
        return cut
