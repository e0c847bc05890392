import codecs
import logging

# The device speaks JSON over a Telnet-style socket, one object per line
LINE_DELIMITER = "\n"
# Outbound lines are plain ASCII JSON; inbound text is UTF-8
ENCODING = "latin-1"
INBOUND_ENCODING = "utf-8"


class LineFramer:
    """Split a byte stream into newline-delimited messages.

    The device sometimes packs several responses into one packet and sometimes
    splits one response across packets, so everything after the last
    delimiter is kept until the next chunk arrives.
    """

    def __init__(self):
        self._logger = logging.getLogger(__name__)
        self._decoder = codecs.getincrementaldecoder(INBOUND_ENCODING)(errors="replace")
        self._buffer: str = ""

    @property
    def buffered(self) -> str:
        """Incomplete trailing fragment waiting for its delimiter."""
        return self._buffer

    def reset(self):
        if self._buffer:
            self._logger.debug(f"Discarding {len(self._buffer)} buffered characters")
        self._decoder.reset()
        self._buffer = ""

    def feed(self, chunk) -> list[str]:
        """Append a chunk and return every line it completes.

        A multibyte character split across chunks is held by the decoder
        until its last byte arrives; invalid bytes become U+FFFD. Empty lines
        are returned as empty strings.
        """
        if isinstance(chunk, (bytes, bytearray)):
            chunk = self._decoder.decode(bytes(chunk))
        self._buffer += chunk

        lines = []
        offset = 0
        while True:
            index = self._buffer.find(LINE_DELIMITER, offset)
            if index == -1:
                break
            line = self._buffer[offset:index]
            if line.endswith("\r"):
                line = line[:-1]
            lines.append(line)
            offset = index + 1
        self._buffer = self._buffer[offset:]
        return lines
