"""Scripted stand-ins for paramiko's SSHClient / Transport / Channel."""

import pytest
import paramiko

from ncprobe.config import ClientConfig

HELLO_REPLY = (
    '<?xml version="1.0" encoding="UTF-8"?>\n'
    '<hello xmlns="urn:ietf:params:xml:ns:netconf:base:1.0">\n'
    "  <capabilities>\n"
    "    <capability>urn:ietf:params:netconf:base:1.0</capability>\n"
    "    <capability>urn:ietf:params:netconf:capability:writable-running:1.0</capability>\n"
    "  </capabilities>\n"
    "  <session-id>4711</session-id>\n"
    "</hello>]]>]]>"
)

OK_REPLY = (
    '<rpc-reply message-id="103" xmlns="urn:ietf:params:xml:ns:netconf:base:1.0">'
    "<ok/></rpc-reply>]]>]]>"
)


class FakeChannel:
    """Replays ``chunks`` from ``recv``; an Exception entry is raised instead of returned."""

    def __init__(self, chunks=None, subsystem_error=None, send_error=None):
        self.chunks = list(chunks or [])
        self.subsystem_error = subsystem_error
        self.send_error = send_error
        self.subsystem = None
        self.sent = []
        self.timeouts = []
        self.recv_sizes = []
        self.closed = False

    def invoke_subsystem(self, name):
        if self.subsystem_error:
            raise self.subsystem_error
        self.subsystem = name

    def sendall(self, data):
        if self.send_error:
            raise self.send_error
        self.sent.append(data)

    def recv(self, nbytes):
        self.recv_sizes.append(nbytes)
        if not self.chunks:
            return b""
        chunk = self.chunks.pop(0)
        if isinstance(chunk, Exception):
            raise chunk
        return chunk.encode("utf-8") if isinstance(chunk, str) else chunk

    def settimeout(self, timeout):
        self.timeouts.append(timeout)

    def close(self):
        self.closed = True

    def sent_text(self):
        return [data.decode("utf-8") for data in self.sent]


class FakeTransport:
    def __init__(self, ssh):
        self.ssh = ssh

    def is_active(self):
        return True

    def open_session(self, timeout=None):
        if self.ssh.open_error:
            raise self.ssh.open_error
        return self.ssh.channel


class FakeClient:
    def __init__(self, ssh):
        self.ssh = ssh
        self.connect_kwargs = None
        self.policy = None
        self.loaded_host_keys = False
        self.closed = False

    def load_system_host_keys(self):
        self.loaded_host_keys = True

    def set_missing_host_key_policy(self, policy):
        self.policy = policy

    def connect(self, **kwargs):
        self.connect_kwargs = kwargs
        if self.ssh.connect_error:
            raise self.ssh.connect_error

    def get_transport(self):
        return FakeTransport(self.ssh)

    def close(self):
        self.closed = True


class FakeSSH:
    def __init__(self):
        self.channel = FakeChannel([HELLO_REPLY])
        self.clients = []
        self.connect_error = None
        self.open_error = None

    def __call__(self):
        client = FakeClient(self)
        self.clients.append(client)
        return client

    @property
    def client(self):
        return self.clients[-1]

    def script(self, *chunks):
        self.channel.chunks.extend(chunks)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "NETCONF_HOST", "NETCONF_PORT", "NETCONF_USER", "NETCONF_PASSWORD",
        "NETCONF_KEY_PATH", "NETCONF_KEY_PASSPHRASE", "NETCONF_TIMEOUT", "NETCONF_RPC_TIMEOUT",
        "NETCONF_VERIFY_HOST_KEY", "NETCONF_LOG_FILE",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def fake_ssh(monkeypatch):
    ssh = FakeSSH()
    monkeypatch.setattr(paramiko, "SSHClient", ssh)
    return ssh


@pytest.fixture
def client_config():
    config = ClientConfig()
    config.NC_HOST = "10.10.10.10"
    config.NC_PASSWORD = "secret"
    config.NC_TIMEOUT = 5.0
    return config
