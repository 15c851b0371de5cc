import pytest

from sshgate.core.exceptions import ErrorCode, HostKeyException
from sshgate.infrastructures.ssh.host_key import HostKeyStore


def test_key_path_follows_port(make_settings, tmp_path):
    settings = make_settings()
    store = HostKeyStore.for_port(2222, settings)

    assert store.key_path == tmp_path / "data" / "ssh" / "sshgate_2222.rsa"
    assert store.bits == 2048


def test_generated_once_then_reused(make_settings):
    store = HostKeyStore.for_port(2222, make_settings())

    first = store.load_or_create()
    second = store.load_or_create()

    assert store.key_path.exists()
    assert first.get_name() == "ssh-rsa"
    assert first.fingerprint == second.fingerprint


def test_concurrent_generation_keeps_first_key(make_settings):
    store = HostKeyStore.for_port(2222, make_settings())
    store._generate()
    original = store.key_path.read_bytes()

    store._generate()

    assert store.key_path.read_bytes() == original
    assert [p.name for p in store.key_path.parent.iterdir()] == [store.key_path.name]


def test_unparsable_key_aborts(tmp_path):
    key_path = tmp_path / "broken.rsa"
    key_path.write_text("not a private key\n")

    with pytest.raises(HostKeyException) as exc_info:
        HostKeyStore(key_path).load_or_create()
    assert exc_info.value.error_code == ErrorCode.HOST_KEY_LOAD_FAILED
    assert exc_info.value.context["key_path"] == str(key_path)


def test_unwritable_directory_aborts(tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("")

    with pytest.raises(HostKeyException) as exc_info:
        HostKeyStore(blocker / "ssh" / "host.rsa", bits=2048).load_or_create()
    assert exc_info.value.error_code == ErrorCode.HOST_KEY_GENERATE_FAILED
