"""
Shared fixtures for sshgate tests.

Provides:
    make_settings  - Settings factory rooted in a temporary directory
    client_key     - session-scoped RSA key used as the client identity
    FakeChannelStream / FakeLookup - in-memory collaborators
"""

import os
import tempfile

# logger is configured at import time, keep its files out of the working tree
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="sshgate-logs-"))

from datetime import datetime
from typing import Dict, List, Optional

import paramiko
import pytest

from sshgate.core.config import Settings
from sshgate.core.exceptions import KeyNotFoundException
from sshgate.domains.keys.interfaces.identity_lookup import IdentityLookupInterface
from sshgate.domains.keys.models.public_key import PublicKey
from sshgate.domains.keys.services.authenticator import canonicalize
from sshgate.infrastructures.ssh.interfaces.channel_stream import ChannelStreamInterface


class FakeChannelStream(ChannelStreamInterface):
    """Channel stream backed by in-memory buffers."""

    def __init__(self, channel_id: int = 0, stdin: bytes = b"", chunk_size: int = 4):
        self._channel_id = channel_id
        self._input: List[bytes] = [
            stdin[i:i + chunk_size] for i in range(0, len(stdin), chunk_size)
        ]
        self.stdout = bytearray()
        self.stderr = bytearray()
        self.exit_statuses: List[int] = []
        self.close_calls = 0
        self._closed = False

    @property
    def channel_id(self) -> int:
        return self._channel_id

    @property
    def closed(self) -> bool:
        return self._closed

    def mark_closed(self) -> None:
        self._closed = True

    async def read(self, size: int) -> bytes:
        if self._closed or not self._input:
            return b""
        return self._input.pop(0)[:size]

    async def write(self, data: bytes) -> None:
        self.stdout.extend(data)

    async def write_stderr(self, data: bytes) -> None:
        self.stderr.extend(data)

    async def send_exit_status(self, status: int) -> None:
        self.exit_statuses.append(status)

    async def close(self) -> None:
        self.close_calls += 1
        self._closed = True


class FakeLookup(IdentityLookupInterface):
    """Identity lookup over a dict of canonical key text -> PublicKey."""

    def __init__(self, keys: Optional[Dict[str, PublicKey]] = None, error: Optional[Exception] = None):
        self.keys = keys or {}
        self.error = error
        self.queries: List[str] = []

    def register(self, key: paramiko.PKey, key_id: int = 1, owner_id: int = 1) -> PublicKey:
        content = canonicalize(key)
        record = PublicKey(
            id=key_id,
            owner_id=owner_id,
            name=f"key-{key_id}",
            fingerprint=key.fingerprint,
            content=content,
            created_at=datetime.now(),
        )
        self.keys[content] = record
        return record

    async def search_by_content(self, content: str) -> PublicKey:
        self.queries.append(content)
        if self.error is not None:
            raise self.error
        try:
            return self.keys[content]
        except KeyError:
            raise KeyNotFoundException()


@pytest.fixture
def make_settings(tmp_path):
    def _make(**overrides) -> Settings:
        values = {
            "LOG_DIR": str(tmp_path / "logs"),
            "APP_DATA_PATH": tmp_path / "data",
            "KEY_DB_PATH": str(tmp_path / "data" / "keys.db"),
            "HOST_KEY_BITS": 2048,
            "EXEC_TIMEOUT": 10.0,
            "EXEC_REPLY_TIMEOUT": 5.0,
            "AUTH_TIMEOUT": 5.0,
        }
        values.update(overrides)
        return Settings(**values)

    return _make


@pytest.fixture(scope="session")
def client_key() -> paramiko.RSAKey:
    return paramiko.RSAKey.generate(2048)


@pytest.fixture(scope="session")
def other_key() -> paramiko.RSAKey:
    return paramiko.RSAKey.generate(2048)
