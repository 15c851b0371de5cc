"""Channel Session Handler

채널 하나의 요청 루프. env 요청은 환경변수로 기록하고, 첫 exec 요청 하나만 처리한 뒤
채널을 닫음
"""

import os
from typing import Dict, List, Optional

from sshgate.core.config import Settings, settings as default_settings
from sshgate.core.logger import logger
from sshgate.core.exceptions import (
    BaseAppException,
    CatTargetException,
    ChannelException,
    CommandException,
    EmptyCommandException,
    ProcessException,
)
from sshgate.domains.command.services.command_builder import CommandBuilder
from sshgate.domains.command.services.sanitizer import sanitize_command
from sshgate.domains.command.services.supervisor import ProcessSupervisor
from sshgate.infrastructures.ssh.interfaces.channel_stream import ChannelStreamInterface
from sshgate.infrastructures.ssh.models.channel_result import ChannelResult
from sshgate.infrastructures.ssh.models.connection import ConnectionInfo
from sshgate.infrastructures.ssh.models.request import RequestKind, SSHRequest
from sshgate.infrastructures.ssh.request_stream import ChannelRequestStream

CAT_COMMAND = "cat"
REQUEST_POLL_INTERVAL = 1.0


def _decode_env_field(value) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return value or ""


class ChannelSessionHandler:
    """채널 요청 상태 머신 ("open" 단일 상태)"""

    def __init__(
        self,
        stream: ChannelStreamInterface,
        requests: ChannelRequestStream,
        connection: ConnectionInfo,
        supervisor: ProcessSupervisor,
        builder: Optional[CommandBuilder] = None,
        settings: Optional[Settings] = None
    ):
        self.stream = stream
        self.requests = requests
        self.connection = connection
        self.supervisor = supervisor
        self.settings = settings or default_settings
        self.builder = builder or CommandBuilder(self.settings)
        self.environ: Dict[str, str] = {}

    @property
    def channel_id(self) -> int:
        return self.stream.channel_id

    async def run(self) -> ChannelResult:
        """
        요청 루프 실행

        Returns:
            ChannelResult: exec 처리 결과 (exec 없이 닫히면 exit_status=None)
        """
        result = ChannelResult(channel_id=self.channel_id)
        try:
            while True:
                request = await self.requests.get(timeout=REQUEST_POLL_INTERVAL)
                if request is None:
                    if self.stream.closed or self.requests.closed:
                        break
                    continue

                if request.kind == RequestKind.ENV:
                    self._handle_env(request)
                elif request.kind == RequestKind.EXEC:
                    result = await self._handle_exec(request)
                    break
                else:
                    logger.debug(f"[SSH] Ignoring '{request.type_name}' request on channel {self.channel_id}")
                    request.answer(False)
        finally:
            self.requests.close()
            await self.stream.close()

        return result

    def _handle_env(self, request: SSHRequest) -> None:
        try:
            name_raw, value_raw = request.payload
            name = _decode_env_field(name_raw)
            value = _decode_env_field(value_raw)
        except (TypeError, ValueError) as e:
            logger.warning(f"[SSH] Invalid env payload {request.payload!r}: {e}")
            return

        # 클라이언트가 "=" 없이 잘못된 값을 보내는 경우가 있음
        if not name or not value:
            logger.warning(f"[SSH] Invalid env arguments: name={name!r}, value={value!r}")
            return

        self.environ[name] = value
        logger.debug(f"[SSH] Channel {self.channel_id} env {name}={value}")

    async def _handle_exec(self, request: SSHRequest) -> ChannelResult:
        argv: List[str] = []
        try:
            tokens = sanitize_command(request.payload)
            logger.info(f"[SSH] Payload: {tokens}")
            if not tokens:
                raise EmptyCommandException(command=repr(request.payload))

            if tokens[0] == CAT_COMMAND and not self.builder.serv_mode:
                argv = tokens[:2]
                return await self._handle_cat(request, tokens)

            command = self.builder.build(tokens, self.connection.key_id, self.environ)
            argv = command.argv

            async def _reply_success():
                request.answer(True)

            status = await self.supervisor.run(command, self.stream, on_started=_reply_success)
            await self._send_exit_status(status)
            return ChannelResult(channel_id=self.channel_id, argv=argv, exit_status=status)

        except (CommandException, ProcessException, ChannelException) as e:
            logger.error(f"[SSH] Channel {self.channel_id} aborted: {e.to_log_dict()}")
            return ChannelResult.failed(self.channel_id, e, argv)
        finally:
            request.answer(False)

    async def _handle_cat(self, request: SSHRequest, tokens: List[str]) -> ChannelResult:
        """cat <path>: 채널 입력을 그대로 파일에 기록 (프로세스 없음)"""
        if len(tokens) < 2:
            raise CatTargetException(detail="missing destination path")
        path = tokens[1]

        # 프로세스는 없지만 채널 입력을 붙잡으므로 동시 세션 한도에 포함
        async with self.supervisor.session_slot():
            return await self._copy_to_file(request, path)

    async def _copy_to_file(self, request: SSHRequest, path: str) -> ChannelResult:
        try:
            fd = os.open(path, os.O_CREAT | os.O_TRUNC | os.O_WRONLY, 0o644)
        except OSError as e:
            raise CatTargetException(path=path, detail=str(e), original_exception=e)

        request.answer(True)
        written = 0
        with os.fdopen(fd, "wb") as f:
            while True:
                data = await self.stream.read(self.settings.READ_BUFFER_SIZE)
                if not data:
                    break
                try:
                    f.write(data)
                except OSError as e:
                    raise CatTargetException(path=path, detail=str(e), original_exception=e)
                written += len(data)

        logger.info(f"[SSH] Wrote {written} bytes to {path}")
        await self._send_exit_status(0)
        return ChannelResult(channel_id=self.channel_id, argv=[CAT_COMMAND, path], exit_status=0)

    async def _send_exit_status(self, status: int) -> None:
        try:
            await self.stream.send_exit_status(status)
        except BaseAppException:
            raise
        except Exception as e:
            raise ChannelException(
                channel_id=self.channel_id,
                detail=f"failed to send exit-status {status}: {e}",
                original_exception=e
            )
