import asyncio

import pytest

from conftest import FakeLookup
from sshgate.core.exceptions import (
    ErrorCode,
    KeyLookupException,
    KeyNotFoundException,
    KeyStoreException,
)
from sshgate.domains.keys.models.public_key import KEY_ID_EXTENSION, Permissions
from sshgate.domains.keys.repositories.public_key_repository import (
    PublicKeyRepository,
    fingerprint_of,
)
from sshgate.domains.keys.services.authenticator import Authenticator, canonicalize


def _authorized_line(key, comment="user@laptop"):
    return f"{key.get_name()} {key.get_base64()} {comment}"


async def _repository(tmp_path) -> PublicKeyRepository:
    repository = PublicKeyRepository(str(tmp_path / "db" / "keys.db"))
    await repository.initialize_db()
    return repository


def test_fingerprint_matches_paramiko(client_key):
    assert fingerprint_of(canonicalize(client_key)) == client_key.fingerprint


def test_fingerprint_of_malformed_key():
    with pytest.raises(ValueError):
        fingerprint_of("ssh-rsa")
    with pytest.raises(ValueError):
        fingerprint_of("ssh-rsa not*base64")


def test_permissions_expose_key_id():
    assert Permissions(extensions={KEY_ID_EXTENSION: "12"}).key_id == "12"
    assert Permissions().key_id is None
    with pytest.raises(ValueError):
        Permissions(extensions={KEY_ID_EXTENSION: ""})


def test_registered_key_resolves_to_its_id(tmp_path, client_key):
    async def scenario():
        repository = await _repository(tmp_path)
        stored = await repository.add_key(5, "laptop", _authorized_line(client_key))
        permissions = await Authenticator(repository).authenticate(client_key)
        return stored, permissions

    stored, permissions = asyncio.run(scenario())
    assert stored.content == canonicalize(client_key)
    assert stored.fingerprint == client_key.fingerprint
    assert permissions.key_id == str(stored.id)


def test_unknown_key_fails(tmp_path, client_key, other_key):
    async def scenario():
        repository = await _repository(tmp_path)
        await repository.add_key(5, "laptop", _authorized_line(client_key))
        await Authenticator(repository).authenticate(other_key)

    with pytest.raises(KeyNotFoundException) as exc_info:
        asyncio.run(scenario())
    assert exc_info.value.context["fingerprint"] == other_key.fingerprint


def test_lookup_failure_is_wrapped(client_key):
    lookup = FakeLookup(error=RuntimeError("database is gone"))
    with pytest.raises(KeyLookupException) as exc_info:
        asyncio.run(Authenticator(lookup).authenticate(client_key))
    assert exc_info.value.error_code == ErrorCode.KEY_LOOKUP_FAILED
    assert isinstance(exc_info.value.original_exception, RuntimeError)


def test_authenticator_queries_canonical_text(client_key):
    lookup = FakeLookup()
    lookup.register(client_key, key_id=9)

    permissions = asyncio.run(Authenticator(lookup).authenticate(client_key))
    assert permissions.key_id == "9"
    assert lookup.queries == [f"{client_key.get_name()} {client_key.get_base64()}"]


def test_duplicate_key_is_rejected(tmp_path, client_key):
    async def scenario():
        repository = await _repository(tmp_path)
        await repository.add_key(1, "first", _authorized_line(client_key))
        await repository.add_key(2, "second", _authorized_line(client_key, "other comment"))

    with pytest.raises(KeyStoreException) as exc_info:
        asyncio.run(scenario())
    assert exc_info.value.error_code == ErrorCode.KEY_ALREADY_EXISTS


def test_malformed_key_is_rejected(tmp_path):
    async def scenario():
        repository = await _repository(tmp_path)
        await repository.add_key(1, "broken", "not-a-key")

    with pytest.raises(KeyStoreException) as exc_info:
        asyncio.run(scenario())
    assert exc_info.value.error_code == ErrorCode.KEY_INVALID


def test_list_and_delete_keys(tmp_path, client_key, other_key):
    async def scenario():
        repository = await _repository(tmp_path)
        first = await repository.add_key(1, "a", _authorized_line(client_key))
        second = await repository.add_key(2, "b", _authorized_line(other_key))
        everything = await repository.list_keys()
        owned = await repository.list_keys(owner_id=2)
        deleted = await repository.delete_key(first.id)
        deleted_again = await repository.delete_key(first.id)
        remaining = await repository.list_keys()
        return first, second, everything, owned, deleted, deleted_again, remaining

    first, second, everything, owned, deleted, deleted_again, remaining = asyncio.run(scenario())
    assert [k.id for k in everything] == [first.id, second.id]
    assert [k.id for k in owned] == [second.id]
    assert deleted is True
    assert deleted_again is False
    assert [k.id for k in remaining] == [second.id]
    assert remaining[0].created_at is not None
