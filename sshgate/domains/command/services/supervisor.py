"""
Process Supervisor
채널 하나의 exec 명령에 대응하는 프로세스 하나를 소유하고 stdio를 채널과 중계
"""

import asyncio
import os
import pwd
import signal
import subprocess
from contextlib import asynccontextmanager
from typing import Awaitable, Callable, Optional, Tuple

from sshgate.core.config import Settings, settings as default_settings
from sshgate.core.logger import logger
from sshgate.core.exceptions import (
    CredentialException,
    ProcessStartException,
    ProcessTimeoutException,
    ProcessWaitException,
    SessionLimitExceededException,
)
from sshgate.domains.command.models.command import Command
from sshgate.infrastructures.ssh.interfaces.channel_stream import ChannelStreamInterface

TIMEOUT_EXIT_STATUS = 124
# 강제 종료 후 파이프가 닫히기를 기다리는 시간
DRAIN_GRACE_SECONDS = 1.0


def exit_status_of(returncode: int) -> int:
    """프로세스 returncode → SSH exit-status 값 (시그널 종료는 128 + 시그널 번호)"""
    if returncode < 0:
        return 128 - returncode
    return returncode


class ProcessHandle:
    """Command 하나에 바인딩된 OS 프로세스"""

    def __init__(self, command: Command, process: asyncio.subprocess.Process):
        self.command = command
        self.process = process

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def returncode(self) -> Optional[int]:
        return self.process.returncode

    def kill(self) -> None:
        """프로세스 그룹 전체 종료. 리더가 끝난 뒤 남은 자식 프로세스도 포함"""
        try:
            os.killpg(self.process.pid, signal.SIGKILL)
        except (ProcessLookupError, PermissionError):
            pass


class ProcessSupervisor:
    """프로세스 생성/중계/종료 대기 서비스"""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or default_settings
        self._limit = self.settings.MAX_SESSIONS
        self._slots = asyncio.Semaphore(self._limit) if self._limit > 0 else None

    @asynccontextmanager
    async def session_slot(self):
        """동시 세션 제한. 한도 초과 시 대기하지 않고 거절"""
        if self._slots is None:
            yield
            return

        if self._slots.locked():
            raise SessionLimitExceededException(limit=self._limit)
        await self._slots.acquire()
        try:
            yield
        finally:
            self._slots.release()

    @staticmethod
    def resolve_credentials() -> Tuple[int, int]:
        """현재 유효 uid/gid 조회

        Raises:
            CredentialException: uid에 해당하는 계정이 없을 때
        """
        uid = os.geteuid()
        gid = os.getegid()
        try:
            pwd.getpwuid(uid)
        except KeyError as e:
            raise CredentialException(
                detail=f"no passwd entry for uid {uid}",
                original_exception=e
            )
        return uid, gid

    async def spawn(self, command: Command) -> ProcessHandle:
        """
        유효 uid/gid를 명시적으로 다시 적용하여 프로세스 생성

        Raises:
            CredentialException: 자격 증명 해석 실패
            ProcessStartException: 파이프 생성 또는 프로세스 시작 실패
        """
        uid, gid = self.resolve_credentials()

        env = dict(os.environ)
        env.update(command.env)

        logger.info(f"[Exec] cmd: {command} (uid={uid}, gid={gid})")
        try:
            process = await asyncio.create_subprocess_exec(
                *command.argv,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
                user=uid,
                group=gid,
                start_new_session=True,
            )
        except (OSError, ValueError, subprocess.SubprocessError) as e:
            raise ProcessStartException(
                argv=command.argv,
                detail=str(e),
                original_exception=e
            )

        return ProcessHandle(command, process)

    async def run(
        self,
        command: Command,
        stream: ChannelStreamInterface,
        on_started: Optional[Callable[[], Awaitable[None]]] = None
    ) -> int:
        """
        프로세스 실행 및 채널 중계

        Args:
            command: 실행할 Command
            stream: 채널 스트림
            on_started: 프로세스 시작 직후 호출 (exec 요청에 success 응답)

        Returns:
            exit-status 값

        Raises:
            SessionLimitExceededException: 동시 세션 한도 초과
            CredentialException, ProcessStartException: 시작 전 실패
            ProcessWaitException: 종료 대기 실패
        """
        async with self.session_slot():
            handle = await self.spawn(command)
            logger.debug(f"[Exec] Started pid {handle.pid}")

            if on_started is not None:
                await on_started()

            return await self._relay(handle, stream)

    async def _relay(self, handle: ProcessHandle, stream: ChannelStreamInterface) -> int:
        process = handle.process
        read_size = self.settings.READ_BUFFER_SIZE

        stdin_task = asyncio.create_task(self._pump_input(stream, process.stdin, read_size))
        stdout_task = asyncio.create_task(
            self._pump_output(process.stdout, stream.write, read_size, "stdout")
        )
        stderr_task = asyncio.create_task(
            self._pump_output(process.stderr, stream.write_stderr, read_size, "stderr")
        )

        loop = asyncio.get_running_loop()
        timeout = self.settings.EXEC_TIMEOUT
        deadline = loop.time() + timeout if timeout and timeout > 0 else None

        try:
            returncode = await self._wait(handle)
            if not await self._drain(handle, stdout_task, stderr_task, deadline):
                returncode = TIMEOUT_EXIT_STATUS
        finally:
            for task in (stdout_task, stderr_task):
                if not task.done():
                    task.cancel()
            # 채널 입력 읽기는 채널이 닫힐 때 풀림
            stdin_task.cancel()

        status = exit_status_of(returncode)
        logger.info(f"[Exec] Process {handle.pid} exited with {returncode} (exit-status {status})")
        return status

    async def _drain(
        self,
        handle: ProcessHandle,
        stdout_task: asyncio.Task,
        stderr_task: asyncio.Task,
        deadline: Optional[float]
    ) -> bool:
        """출력 파이프가 닫힐 때까지 중계. 남은 기한 안에 닫히지 않으면 그룹을 죽이고 False

        자식 프로세스가 stdout을 물려받아 열어둔 경우 리더가 끝나도 파이프가 닫히지 않음
        """
        remaining = None
        if deadline is not None:
            remaining = max(deadline - asyncio.get_running_loop().time(), DRAIN_GRACE_SECONDS)

        try:
            await asyncio.wait_for(asyncio.gather(stdout_task, stderr_task), timeout=remaining)
            return True
        except asyncio.TimeoutError:
            error = ProcessTimeoutException(
                timeout_seconds=self.settings.EXEC_TIMEOUT,
                argv=handle.command.argv,
            )
            logger.error(f"[Exec] Output still open past deadline: {error.to_log_dict()}")
            handle.kill()
            return False

    async def _wait(self, handle: ProcessHandle) -> int:
        timeout = self.settings.EXEC_TIMEOUT
        try:
            if timeout and timeout > 0:
                return await asyncio.wait_for(handle.process.wait(), timeout=timeout)
            return await handle.process.wait()
        except asyncio.TimeoutError:
            error = ProcessTimeoutException(timeout_seconds=timeout, argv=handle.command.argv)
            logger.error(f"[Exec] Deadline exceeded: {error.to_log_dict()}")
            handle.kill()
            await handle.process.wait()
            return TIMEOUT_EXIT_STATUS
        except asyncio.CancelledError:
            handle.kill()
            raise
        except Exception as e:
            handle.kill()
            raise ProcessWaitException(
                argv=handle.command.argv,
                detail=str(e),
                original_exception=e
            )

    @staticmethod
    async def _pump_input(
        stream: ChannelStreamInterface,
        stdin: asyncio.StreamWriter,
        read_size: int
    ) -> None:
        """채널 입력 → 프로세스 stdin"""
        try:
            while True:
                data = await stream.read(read_size)
                if not data:
                    break
                stdin.write(data)
                await stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            logger.debug(f"[Exec] stdin closed by process: {e}")
        finally:
            if not stdin.is_closing():
                stdin.close()

    @staticmethod
    async def _pump_output(
        reader: asyncio.StreamReader,
        write: Callable[[bytes], Awaitable[None]],
        read_size: int,
        name: str
    ) -> None:
        """프로세스 출력 → 채널. 채널 쓰기 실패 후에도 파이프는 끝까지 비움"""
        channel_ok = True
        while True:
            data = await reader.read(read_size)
            if not data:
                break
            if not channel_ok:
                continue
            try:
                await write(data)
            except Exception as e:
                logger.warning(f"[Exec] Failed to relay {name}, discarding the rest: {e}")
                channel_ok = False
