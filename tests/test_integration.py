"""End-to-end checks over a loopback connection with a real paramiko client."""

import asyncio
from concurrent.futures import ThreadPoolExecutor

import paramiko
import pytest

from conftest import FakeLookup
from sshgate.core.exceptions import ListenerBindException
from sshgate.domains.keys.services.authenticator import Authenticator
from sshgate.infrastructures.ssh.host_key import HostKeyStore
from sshgate.infrastructures.ssh.listener import Listener
from sshgate.infrastructures.ssh.utils.ssh_utils import configure_executor, shutdown_executor


def _connect(port: int, key: paramiko.PKey) -> paramiko.SSHClient:
    client = paramiko.SSHClient()
    client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
    client.connect(
        "127.0.0.1",
        port=port,
        username="git",
        pkey=key,
        allow_agent=False,
        look_for_keys=False,
        timeout=10,
        banner_timeout=10,
        auth_timeout=10,
    )
    return client


def _exec(port: int, key: paramiko.PKey, command: str, stdin_data: bytes = b""):
    client = _connect(port, key)
    try:
        stdin, stdout, stderr = client.exec_command(command, timeout=10)
        if stdin_data:
            stdin.write(stdin_data)
        stdin.channel.shutdown_write()
        out = stdout.read()
        err = stderr.read()
        status = stdout.channel.recv_exit_status()
        return out, err, status
    finally:
        client.close()


def _serve(settings, lookup, client_call):
    async def scenario():
        host_key = HostKeyStore.for_port(0, settings).load_or_create()
        listener = Listener("127.0.0.1", 0, host_key, Authenticator(lookup), settings=settings)
        listener.start()
        serving = asyncio.create_task(listener.serve_forever())
        try:
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(None, client_call, listener.bound_port)
        finally:
            await listener.close()
            await asyncio.gather(serving, return_exceptions=True)

    return asyncio.run(scenario())


def test_exec_round_trip(make_settings, client_key):
    lookup = FakeLookup()
    lookup.register(client_key)

    out, err, status = _serve(
        make_settings(), lookup, lambda port: _exec(port, client_key, "echo hello")
    )

    assert out == b"hello\n"
    assert err == b""
    assert status == 0


def test_nonzero_exit_status_reaches_client(make_settings, client_key):
    lookup = FakeLookup()
    lookup.register(client_key)

    _, _, status = _serve(make_settings(), lookup, lambda port: _exec(port, client_key, "false"))

    assert status == 1


def test_stdin_is_relayed(make_settings, client_key):
    lookup = FakeLookup()
    lookup.register(client_key)

    out, _, status = _serve(
        make_settings(), lookup, lambda port: _exec(port, client_key, "sh -c cat", b"ping\n")
    )

    assert out == b"ping\n"
    assert status == 0


def test_cat_upload(make_settings, client_key, tmp_path):
    lookup = FakeLookup()
    lookup.register(client_key)
    target = tmp_path / "upload.txt"

    _, _, status = _serve(
        make_settings(), lookup, lambda port: _exec(port, client_key, f"cat {target}", b"uploaded\n")
    )

    assert status == 0
    assert target.read_bytes() == b"uploaded\n"


def test_idle_stdin_does_not_starve_other_sessions(make_settings, client_key, tmp_path):
    lookup = FakeLookup()
    lookup.register(client_key)
    script = tmp_path / "slow_hi.sh"
    script.write_text("sleep 1; echo hi\n")

    def run_with_stdin_open(port):
        client = _connect(port, client_key)
        try:
            _, stdout, _ = client.exec_command(f"sh {script}", timeout=20)
            return stdout.read(), stdout.channel.recv_exit_status()
        finally:
            client.close()

    def two_sessions(port):
        with ThreadPoolExecutor(max_workers=2) as pool:
            futures = [pool.submit(run_with_stdin_open, port) for _ in range(2)]
            return [future.result(timeout=30) for future in futures]

    # pool smaller than the number of idle readers
    configure_executor(2)
    try:
        results = _serve(make_settings(IO_WORKERS=2), lookup, two_sessions)
    finally:
        shutdown_executor()

    assert results == [(b"hi\n", 0), (b"hi\n", 0)]


def test_unknown_key_cannot_connect(make_settings, client_key, other_key):
    lookup = FakeLookup()
    lookup.register(client_key)

    def attempt(port):
        with pytest.raises(paramiko.AuthenticationException):
            _connect(port, other_key)

    _serve(make_settings(), lookup, attempt)
    assert lookup.queries


def test_unresolvable_command_is_refused(make_settings, client_key):
    lookup = FakeLookup()
    lookup.register(client_key)

    def attempt(port):
        client = _connect(port, client_key)
        try:
            with pytest.raises(paramiko.SSHException):
                client.exec_command("definitely-not-a-command-xyz", timeout=10)
        finally:
            client.close()

    _serve(make_settings(), lookup, attempt)


def test_port_in_use_fails_to_bind(make_settings, client_key):
    settings = make_settings()

    async def scenario():
        host_key = HostKeyStore.for_port(0, settings).load_or_create()
        first = Listener("127.0.0.1", 0, host_key, Authenticator(FakeLookup()), settings=settings)
        first.start()
        try:
            second = Listener("127.0.0.1", first.bound_port, host_key, Authenticator(FakeLookup()), settings=settings)
            with pytest.raises(ListenerBindException):
                second.start()
        finally:
            await first.close()

    asyncio.run(scenario())
