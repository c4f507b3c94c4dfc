"""End-of-message framing for NETCONF 1.0 (the ``]]>]]>`` delimiter).

The channel object is anything with paramiko's ``Channel`` surface:
``sendall(bytes)``, ``recv(n)`` returning ``b""`` at end-of-stream, and
``settimeout(seconds)``.
"""
import socket
import time
from typing import Any, Optional

import paramiko

from ncprobe.config import DELIMITER, DELIMITER_BYTES, READ_CHUNK_SIZE
from ncprobe.errors import FramingFault


def ensure_delimiter(payload: str) -> str:
    # Substring check, not suffix: a delimiter anywhere means the caller framed it.
    if DELIMITER not in payload:
        return payload + DELIMITER
    return payload


def send_message(channel: Any, payload: str) -> str:
    message = ensure_delimiter(payload)
    try:
        channel.sendall(message.encode("utf-8"))
    except (OSError, EOFError, paramiko.SSHException) as exc:
        raise FramingFault(f"failed to send message: {exc}") from exc
    return message


def read_message(
    channel: Any,
    chunk_size: int = READ_CHUNK_SIZE,
    deadline: Optional[float] = None,
) -> str:
    """Read until the delimiter or end-of-stream and return the text read.

    The delimiter is kept in the result. End-of-stream before the delimiter
    returns what arrived so far. ``deadline`` is a ``time.monotonic()`` value;
    without it the loop blocks for as long as the channel's own timeout allows.
    """
    buffer = bytearray()
    while True:
        if deadline is not None:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise FramingFault(f"deadline exceeded after {len(buffer)} bytes")
            channel.settimeout(remaining)
        try:
            chunk = channel.recv(chunk_size)
        except socket.timeout as exc:
            raise FramingFault(f"read timed out after {len(buffer)} bytes") from exc
        except (OSError, EOFError, paramiko.SSHException) as exc:
            raise FramingFault(f"failed to read response: {exc}") from exc

        if not chunk:
            break
        # The delimiter may straddle the previous chunk boundary.
        search_from = max(0, len(buffer) - len(DELIMITER_BYTES) + 1)
        buffer.extend(chunk)
        if buffer.find(DELIMITER_BYTES, search_from) != -1:
            break
    return buffer.decode("utf-8", errors="replace")
