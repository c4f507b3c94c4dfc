import re
import sys
import json
from datetime import datetime
from typing import Any, Dict, Optional

from ncprobe.config import FALLBACK_PORT, LOG_PREFIX
from ncprobe.errors import ValidationError

TRACE_FILE_LINE = re.compile(r'File "(?:[^"]*[\\/])?([^"\\/]+)"')
IP_SEGMENT = re.compile(r"[0-9]{1,3}")
PORT_NUMBER = re.compile(r"[0-9]{1,5}")


def log_error(message: str) -> None:
    print(f"{LOG_PREFIX} {message}", file=sys.stderr, flush=True)


def iso_now() -> str:
    return datetime.now().isoformat(timespec="milliseconds")


def safe_name(text: str) -> str:
    cleaned = re.sub(r"[^a-zA-Z0-9._-]+", "_", text.strip())
    return cleaned[:80] if cleaned else "unnamed"


def json_line(path: Optional[str], payload: Dict[str, Any]) -> None:
    if not path:
        return
    try:
        with open(path, "a", encoding="utf-8") as handle:
            handle.write(json.dumps(payload, ensure_ascii=False) + "\n")
    except Exception as exc:
        log_error(f"log write failed ({path}): {exc}")


def validate_ip_address(ip: str) -> str:
    segments = (ip or "").split(".")
    if len(segments) != 4:
        raise ValidationError(f"provided ip: {ip} - ip address is not formatted properly")
    for seg in segments:
        if not IP_SEGMENT.fullmatch(seg) or int(seg) > 255:
            raise ValidationError(f"provided ip: {ip} - ip address includes wrong values: {seg}")
    return ip


def validate_port(port: Any) -> int:
    """Return the port as an int, or FALLBACK_PORT with a warning if it is unusable."""
    text = str(port).strip() if port is not None else ""
    if PORT_NUMBER.fullmatch(text) and 0 < int(text) < 65536:
        return int(text)
    log_error(f"provided port: {port} - wrong port number, defaulting to {FALLBACK_PORT}")
    return FALLBACK_PORT


def remove_empty_lines(text: str) -> str:
    return "\n".join(line for line in text.split("\n") if line != "")


def format_xml(data: str) -> str:
    """Drop whitespace-only lines; the device's own indentation is kept as is."""
    if not data:
        return ""
    return "\n".join(line for line in data.split("\n") if line.strip())


def sanitize_traceback(trace: str) -> str:
    """Reduce every ``File "..."`` reference in a traceback to its base name."""
    return TRACE_FILE_LINE.sub(r'File "\1"', trace)
