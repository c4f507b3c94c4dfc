import os
from typing import Optional

# ========= Static config =========
CONNECT_TIMEOUT = 30
RPC_TIMEOUT = 300
READ_CHUNK_SIZE = 1024
FILTER_FEED_SIZE = 65536

DEFAULT_PORT = "830"
FALLBACK_PORT = 22
DEFAULT_USERNAME = "admin"
NETCONF_SUBSYSTEM = "netconf"

# ========= Wire messages =========
DELIMITER = "]]>]]>"
DELIMITER_BYTES = DELIMITER.encode("utf-8")

BASE_CAPABILITY = "urn:ietf:params:netconf:base:1.0"
NETCONF_NAMESPACE = "urn:ietf:params:xml:ns:netconf:base:1.0"

HELLO_MESSAGE = (
    '<?xml version="1.0" encoding="UTF-8"?>\n'
    f'<hello xmlns="{NETCONF_NAMESPACE}">\n'
    "  <capabilities>\n"
    f"    <capability>{BASE_CAPABILITY}</capability>\n"
    "  </capabilities>\n"
    f"</hello>{DELIMITER}"
)

CLOSE_SESSION_RPC = (
    f'<rpc message-id="103" xmlns="{NETCONF_NAMESPACE}">\n'
    "  <close-session/>\n"
    f"</rpc>{DELIMITER}"
)

LOG_PREFIX = "[NETCONF]"


def _env_seconds(name: str, default: float) -> float:
    from ncprobe.utils import log_error
    value = os.environ.get(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        log_error(f"{name}={value!r} is not a number, keeping {default}")
        return default


# ========= Runtime Configuration =========
class ClientConfig:
    def __init__(self):
        self.NC_HOST: Optional[str] = None
        self.NC_PORT: str = DEFAULT_PORT
        self.NC_USER: str = DEFAULT_USERNAME
        self.NC_PASSWORD: Optional[str] = None
        self.NC_KEY_PATH: Optional[str] = None
        self.NC_KEY_PASSPHRASE: Optional[str] = None
        self.NC_TIMEOUT: float = float(CONNECT_TIMEOUT)
        self.NC_RPC_TIMEOUT: float = float(RPC_TIMEOUT)
        self.NC_VERIFY_HOST_KEY: bool = False
        self.NC_LOG_FILE: Optional[str] = None

    def load_from_env(self):
        self.NC_HOST = os.environ.get("NETCONF_HOST", self.NC_HOST)
        self.NC_PORT = os.environ.get("NETCONF_PORT", self.NC_PORT)
        self.NC_USER = os.environ.get("NETCONF_USER", self.NC_USER)
        self.NC_PASSWORD = os.environ.get("NETCONF_PASSWORD", self.NC_PASSWORD)
        self.NC_KEY_PATH = os.environ.get("NETCONF_KEY_PATH", self.NC_KEY_PATH)
        self.NC_KEY_PASSPHRASE = os.environ.get("NETCONF_KEY_PASSPHRASE", self.NC_KEY_PASSPHRASE)
        self.NC_LOG_FILE = os.environ.get("NETCONF_LOG_FILE", self.NC_LOG_FILE)

        self.NC_TIMEOUT = _env_seconds("NETCONF_TIMEOUT", self.NC_TIMEOUT)
        self.NC_RPC_TIMEOUT = _env_seconds("NETCONF_RPC_TIMEOUT", self.NC_RPC_TIMEOUT)

        verify_host_env = os.environ.get("NETCONF_VERIFY_HOST_KEY")
        if verify_host_env is not None:
            self.NC_VERIFY_HOST_KEY = verify_host_env.lower() in ("true", "1", "yes")
        return self
