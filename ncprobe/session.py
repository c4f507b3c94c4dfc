import os
import threading
import time
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

import paramiko

from ncprobe.config import (
    ClientConfig, CLOSE_SESSION_RPC, HELLO_MESSAGE, NETCONF_SUBSYSTEM, READ_CHUNK_SIZE
)
from ncprobe.errors import (
    FramingFault, NetconfConnectionError, NetconfError, ProtocolError,
    SessionBusyError, SessionStateError
)
from ncprobe.framing import read_message, send_message
from ncprobe.utils import iso_now, json_line, log_error, validate_ip_address, validate_port


class SessionState(str, Enum):
    DISCONNECTED = "disconnected"
    AUTHENTICATING = "authenticating"
    HANDSHAKE_SENT = "handshake_sent"
    READY = "ready"
    CLOSED = "closed"
    FAULTED = "faulted"


class NetconfSession:
    """One NETCONF conversation over an SSH ``netconf`` subsystem channel.

    Requests are correlated with replies purely by ordering, so a session
    carries at most one outstanding request. ``run`` enforces that with a
    non-blocking lock: a second caller gets ``SessionBusyError`` instead of
    reading someone else's reply. ``disconnect`` waits on the same lock.
    """

    def __init__(self, config: ClientConfig, chunk_size: int = READ_CHUNK_SIZE):
        self.config = config
        self.chunk_size = chunk_size

        self.host: str = config.NC_HOST or ""
        self.port: Optional[int] = None
        self.state = SessionState.DISCONNECTED
        self.fault_reason = ""

        self.client: Optional[paramiko.SSHClient] = None
        self.channel: Optional[paramiko.Channel] = None
        self.capabilities = ""

        self.created_at = datetime.now()
        self.requests_sent = 0
        self._lock = threading.Lock()

    def __enter__(self) -> "NetconfSession":
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self.state is not SessionState.CLOSED:
            self.disconnect()

    @property
    def endpoint(self) -> str:
        return f"{self.host}:{self.port if self.port is not None else self.config.NC_PORT}"

    def _log_session(self, direction: str, payload: Dict[str, Any]) -> None:
        data = {"ts": iso_now(), "dir": direction, "endpoint": self.endpoint, "state": self.state.value}
        data.update(payload)
        json_line(self.config.NC_LOG_FILE, data)

    def _set_state(self, state: SessionState) -> None:
        previous = self.state
        self.state = state
        self._log_session("SYS", {"event": "state", "from": previous.value, "to": state.value})

    def _fault(self, reason: str) -> None:
        if self.state is SessionState.FAULTED:
            return
        self.fault_reason = reason
        self._set_state(SessionState.FAULTED)
        self._log_session("SYS", {"event": "session_faulted", "reason": reason})
        self.close()

    def _require(self, *states: SessionState) -> None:
        if self.state not in states:
            expected = ", ".join(s.value for s in states)
            detail = f" ({self.fault_reason})" if self.fault_reason else ""
            raise SessionStateError(
                f"{self.endpoint} - session is {self.state.value}{detail}, expected {expected}"
            )

    def _connect_kwargs(self) -> Dict[str, Any]:
        connect_kwargs = {
            "hostname": self.host,
            "port": self.port,
            "username": self.config.NC_USER,
            "timeout": self.config.NC_TIMEOUT,
            "banner_timeout": self.config.NC_TIMEOUT,
            "auth_timeout": self.config.NC_TIMEOUT,
            "allow_agent": False,
            "look_for_keys": False,
        }
        if self.config.NC_PASSWORD:
            connect_kwargs["password"] = self.config.NC_PASSWORD
        key_path = self.config.NC_KEY_PATH
        if key_path:
            key_path = os.path.expanduser(key_path)
            if os.path.isfile(key_path):
                connect_kwargs["key_filename"] = key_path
                if self.config.NC_KEY_PASSPHRASE:
                    connect_kwargs["passphrase"] = self.config.NC_KEY_PASSPHRASE
            else:
                log_error(f"key file {key_path} not found, using password authentication only")
        return connect_kwargs

    def connect(self) -> "NetconfSession":
        self._require(SessionState.DISCONNECTED)
        self.host = validate_ip_address(self.config.NC_HOST)
        self.port = validate_port(self.config.NC_PORT)

        self._set_state(SessionState.AUTHENTICATING)
        self.client = paramiko.SSHClient()
        if self.config.NC_VERIFY_HOST_KEY:
            self.client.load_system_host_keys()
        else:
            self.client.set_missing_host_key_policy(paramiko.AutoAddPolicy())

        try:
            self.client.connect(**self._connect_kwargs())
        except (paramiko.SSHException, OSError, EOFError) as exc:
            self._fault(f"connect failed: {exc}")
            raise NetconfConnectionError(f"{self.endpoint} - {exc}") from exc

        try:
            transport = self.client.get_transport()
            if transport is None or not transport.is_active():
                raise paramiko.SSHException("transport is not active")
            self.channel = transport.open_session(timeout=self.config.NC_TIMEOUT)
        except (paramiko.SSHException, OSError, EOFError) as exc:
            self._fault(f"channel open failed: {exc}")
            raise NetconfConnectionError(
                f"{self.endpoint} - failure opening session channel - details: {exc}"
            ) from exc

        try:
            self.channel.invoke_subsystem(NETCONF_SUBSYSTEM)
        except (paramiko.SSHException, OSError, EOFError) as exc:
            self._fault(f"subsystem request refused: {exc}")
            raise ProtocolError(
                f"{self.endpoint} - failed to request {NETCONF_SUBSYSTEM} subsystem: {exc}"
            ) from exc

        try:
            send_message(self.channel, HELLO_MESSAGE)
            self._set_state(SessionState.HANDSHAKE_SENT)
            self._log_session("OUT", {"event": "hello_sent"})
            deadline = time.monotonic() + self.config.NC_TIMEOUT
            self.capabilities = read_message(self.channel, self.chunk_size, deadline)
            self.channel.settimeout(None)
        except FramingFault as exc:
            self._fault(f"handshake failed: {exc}")
            raise

        self._log_session("IN", {"event": "hello_received", "chars": len(self.capabilities)})
        self._set_state(SessionState.READY)
        return self

    def run(self, payload: str, timeout: Optional[float] = None) -> str:
        """Send one RPC and return the raw reply, delimiter included.

        ``timeout`` bounds the whole reply read; without it the read blocks
        until the delimiter, end-of-stream or a transport error.
        """
        if not self._lock.acquire(blocking=False):
            raise SessionBusyError(f"{self.endpoint} - a request is already outstanding on this session")
        try:
            self._require(SessionState.READY)
            return self._exchange(payload, timeout)
        finally:
            self._lock.release()

    def _exchange(self, payload: str, timeout: Optional[float]) -> str:
        # Caller holds self._lock.
        deadline = time.monotonic() + timeout if timeout is not None else None
        try:
            message = send_message(self.channel, payload)
            self.requests_sent += 1
            self._log_session("OUT", {"event": "rpc_sent", "chars": len(message)})
            reply = read_message(self.channel, self.chunk_size, deadline)
            if deadline is not None:
                self.channel.settimeout(None)
        except FramingFault as exc:
            self._fault(f"rpc failed: {exc}")
            raise
        self._log_session("IN", {"event": "rpc_reply", "chars": len(reply)})
        return reply

    def disconnect(self) -> None:
        """Close the session, waiting for an in-flight ``run`` to finish first."""
        with self._lock:
            if self.state is SessionState.CLOSED:
                raise SessionStateError(f"{self.endpoint} - session already closed")
            was_faulted = self.state is SessionState.FAULTED
            if self.state is SessionState.READY:
                try:
                    self._exchange(CLOSE_SESSION_RPC, self.config.NC_TIMEOUT)
                except NetconfError as exc:
                    log_error(f"{self.endpoint} - close-session not acknowledged: {exc}")
            self.close()
            if not was_faulted:
                self._set_state(SessionState.CLOSED)
            summary = self.info()
            summary["event"] = "session_closed"
            self._log_session("SYS", summary)

    def close(self) -> None:
        try:
            if self.channel:
                self.channel.close()
        except Exception as exc:
            log_error(f"{self.endpoint} - channel close failed: {exc}")
        self.channel = None

        try:
            if self.client:
                self.client.close()
        except Exception as exc:
            log_error(f"{self.endpoint} - client close failed: {exc}")
        self.client = None

    def info(self) -> Dict[str, Any]:
        return {
            "endpoint": self.endpoint,
            "username": self.config.NC_USER,
            "state": self.state.value,
            "fault_reason": self.fault_reason,
            "requests_sent": self.requests_sent,
            "capabilities_chars": len(self.capabilities),
            "created_at": self.created_at.isoformat(),
        }
