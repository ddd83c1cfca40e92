import sys
import json
import logging
import threading
from typing import Optional, Dict, Any, BinaryIO, TextIO, Union

from .protocol import DecodeError

logger = logging.getLogger("MCPFleet.mcp.transport")


def decode_line(line: Union[bytes, str]) -> Dict[str, Any]:
    """Decode one wire line into a message object or raise DecodeError."""
    if isinstance(line, bytes):
        try:
            line = line.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecodeError(f"Message is not valid UTF-8: {exc}") from exc
    try:
        msg = json.loads(line)
    except json.JSONDecodeError as exc:
        raise DecodeError(f"Malformed JSON message: {exc}") from exc
    if not isinstance(msg, dict):
        raise DecodeError(f"Message must be a JSON object, got {type(msg).__name__}")
    return msg


def encode_message(message: Any) -> str:
    """Encode a message as a single line; json.dumps escapes embedded newlines."""
    return json.dumps(message)


class LineTransport:
    """
    Newline-delimited JSON framing over a pair of streams.

    Reading skips blank and malformed lines. Writing is serialized by a lock
    so worker threads can emit responses concurrently.
    """

    def __init__(
        self,
        input_stream: Optional[BinaryIO] = None,
        output_stream: Optional[TextIO] = None,
    ):
        self._input = input_stream if input_stream is not None else sys.stdin.buffer
        self._output = output_stream if output_stream is not None else sys.stdout
        self._closed = threading.Event()
        self.write_lock = threading.Lock()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def read_message(self) -> Optional[Dict[str, Any]]:
        """
        Read the next well-formed message.

        Returns None at end of stream or once the transport is closed.
        """
        while not self.closed:
            try:
                line = self._input.readline()
            except (OSError, ValueError) as exc:
                if not self.closed:
                    logger.warning("Input stream failed while reading: %s", exc)
                    self._closed.set()
                return None
            if not line:
                return None
            if not line.strip():
                continue

            try:
                return decode_line(line)
            except DecodeError as exc:
                logger.error("Skipping malformed message: %s", exc)
                continue
        return None

    def send(self, message: Dict[str, Any]) -> None:
        """Serialize and write one message. No-op after close."""
        if self.closed:
            return

        try:
            serialized = encode_message(message)
            with self.write_lock:
                if self.closed:
                    return
                self._output.write(serialized + "\n")
                self._output.flush()
        except (BrokenPipeError, OSError, ValueError) as exc:
            self._closed.set()
            logger.warning("Output stream closed while sending: %s", exc)

    def close(self) -> None:
        """Stop processing input and release the input stream."""
        if self.closed:
            return
        with self.write_lock:
            self._closed.set()
            try:
                self._output.flush()
            except (OSError, ValueError):
                pass
        try:
            self._input.close()
        except (OSError, ValueError) as exc:
            logger.debug("Ignoring error while closing input stream: %s", exc)
