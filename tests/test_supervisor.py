import asyncio
import shutil

import pytest

from conftest import FakeChannelStream
from sshgate.core.exceptions import (
    ErrorCode,
    ProcessStartException,
    SessionLimitExceededException,
)
from sshgate.domains.command.models.command import Command
from sshgate.domains.command.services.supervisor import (
    TIMEOUT_EXIT_STATUS,
    ProcessSupervisor,
    exit_status_of,
)


def _command(*argv, **env) -> Command:
    return Command(argv=[shutil.which(argv[0])] + list(argv[1:]), env=env)


def test_exit_status_mapping():
    assert exit_status_of(0) == 0
    assert exit_status_of(3) == 3
    assert exit_status_of(-15) == 143


def test_stdout_is_relayed_and_status_reported(make_settings):
    stream = FakeChannelStream()
    started = []

    async def on_started():
        started.append(True)

    supervisor = ProcessSupervisor(make_settings())
    status = asyncio.run(supervisor.run(_command("echo", "hello"), stream, on_started=on_started))

    assert status == 0
    assert started == [True]
    assert bytes(stream.stdout) == b"hello\n"
    assert bytes(stream.stderr) == b""


def test_stderr_and_nonzero_exit(make_settings):
    stream = FakeChannelStream()
    supervisor = ProcessSupervisor(make_settings())
    status = asyncio.run(supervisor.run(_command("sh", "-c", "echo oops >&2; exit 3"), stream))

    assert status == 3
    assert bytes(stream.stderr) == b"oops\n"


def test_channel_input_reaches_stdin(make_settings):
    stream = FakeChannelStream(stdin=b"0123456789abcdef", chunk_size=5)
    supervisor = ProcessSupervisor(make_settings())
    status = asyncio.run(supervisor.run(_command("cat"), stream))

    assert status == 0
    assert bytes(stream.stdout) == b"0123456789abcdef"


def test_command_environment_is_applied(make_settings):
    stream = FakeChannelStream()
    supervisor = ProcessSupervisor(make_settings())
    asyncio.run(supervisor.run(_command("sh", "-c", 'printf %s "$GIT_PROTOCOL"', GIT_PROTOCOL="version=2"), stream))

    assert bytes(stream.stdout) == b"version=2"


def test_signal_exit_maps_to_128_plus_signal(make_settings):
    stream = FakeChannelStream()
    supervisor = ProcessSupervisor(make_settings())
    status = asyncio.run(supervisor.run(_command("sh", "-c", "kill -TERM $$"), stream))

    assert status == 143


def test_deadline_kills_the_process(make_settings):
    stream = FakeChannelStream()
    supervisor = ProcessSupervisor(make_settings(EXEC_TIMEOUT=0.5))

    async def scenario():
        loop = asyncio.get_running_loop()
        started_at = loop.time()
        status = await supervisor.run(_command("sleep", "30"), stream)
        return status, loop.time() - started_at

    status, elapsed = asyncio.run(scenario())
    assert status == TIMEOUT_EXIT_STATUS
    assert elapsed < 10


def test_start_failure(make_settings):
    supervisor = ProcessSupervisor(make_settings())
    command = Command(argv=["/nonexistent/bin/tool"])

    with pytest.raises(ProcessStartException) as exc_info:
        asyncio.run(supervisor.run(command, FakeChannelStream()))
    assert exc_info.value.error_code == ErrorCode.PROCESS_START_FAILED
    assert exc_info.value.context["argv"] == ["/nonexistent/bin/tool"]


def test_session_limit_refuses_without_waiting(make_settings):
    supervisor = ProcessSupervisor(make_settings(MAX_SESSIONS=1))

    async def scenario():
        started = asyncio.Event()

        async def on_started():
            started.set()

        first = asyncio.create_task(
            supervisor.run(_command("sleep", "0.5"), FakeChannelStream(channel_id=1), on_started=on_started)
        )
        await started.wait()
        with pytest.raises(SessionLimitExceededException):
            await supervisor.run(_command("true"), FakeChannelStream(channel_id=2))
        first_status = await first

        # the slot is released after the first process exits
        second_status = await supervisor.run(_command("true"), FakeChannelStream(channel_id=3))
        return first_status, second_status

    assert asyncio.run(scenario()) == (0, 0)


def test_deadline_covers_output_held_by_background_child(make_settings, tmp_path):
    script = tmp_path / "detach.sh"
    script.write_text("sleep 30 &\necho started\n")
    stream = FakeChannelStream()
    supervisor = ProcessSupervisor(make_settings(EXEC_TIMEOUT=1))

    async def scenario():
        loop = asyncio.get_running_loop()
        started_at = loop.time()
        status = await supervisor.run(_command("sh", str(script)), stream)
        return status, loop.time() - started_at

    status, elapsed = asyncio.run(scenario())
    assert status == TIMEOUT_EXIT_STATUS
    assert elapsed < 10
    assert bytes(stream.stdout) == b"started\n"
