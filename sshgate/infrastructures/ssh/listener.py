"""SSH Listener

원시 TCP 연결을 accept하고 연결마다 독립된 ConnectionHandler 태스크를 생성
"""

import asyncio
import socket
from typing import Optional, Set

import paramiko

from sshgate.core.config import Settings, settings as default_settings
from sshgate.core.logger import logger
from sshgate.core.exceptions import ErrorCode, ListenerBindException, TransportException
from sshgate.domains.command.services.command_builder import CommandBuilder
from sshgate.domains.command.services.supervisor import ProcessSupervisor
from sshgate.domains.keys.services.authenticator import Authenticator
from sshgate.infrastructures.ssh.connection import ConnectionHandler

ACCEPT_ERROR_BACKOFF = 0.05


class Listener:
    """SSH 서버 리스너"""

    def __init__(
        self,
        host: str,
        port: int,
        host_key: paramiko.PKey,
        authenticator: Authenticator,
        supervisor: Optional[ProcessSupervisor] = None,
        builder: Optional[CommandBuilder] = None,
        settings: Optional[Settings] = None
    ):
        self.host = host
        self.port = port
        self.host_key = host_key
        self.authenticator = authenticator
        self.settings = settings or default_settings
        self.supervisor = supervisor or ProcessSupervisor(self.settings)
        self.builder = builder or CommandBuilder(self.settings)

        self._sock: Optional[socket.socket] = None
        self._serve_task: Optional[asyncio.Task] = None
        self._connections: Set[asyncio.Task] = set()
        self._closing = False

    @property
    def bound_port(self) -> int:
        """실제 바인딩된 포트 (port=0으로 시작한 경우 유용)"""
        if self._sock is None:
            return self.port
        return self._sock.getsockname()[1]

    def start(self) -> None:
        """
        host:port 바인딩

        Raises:
            ListenerBindException: 바인딩 실패 시 (프로세스 시작 중단)
        """
        try:
            self._sock = socket.create_server((self.host, self.port), backlog=128)
            self._sock.setblocking(False)
        except OSError as e:
            raise ListenerBindException(
                host=self.host,
                port=self.port,
                detail=str(e),
                original_exception=e
            )
        logger.info(f"[SSH] Listening on {self.host}:{self.bound_port}")

    async def serve_forever(self) -> None:
        """accept 루프. accept 에러는 기록 후 계속 진행"""
        if self._sock is None:
            self.start()

        loop = asyncio.get_running_loop()
        self._serve_task = asyncio.current_task()

        while not self._closing:
            try:
                conn, addr = await loop.sock_accept(self._sock)
            except OSError as e:
                if self._closing:
                    break
                error = TransportException(ErrorCode.ACCEPT_FAILED, detail=str(e), original_exception=e)
                logger.error(f"[SSH] Error accepting incoming connection: {error.to_log_dict()}")
                await asyncio.sleep(ACCEPT_ERROR_BACKOFF)
                continue

            # paramiko Transport는 블로킹 소켓을 사용
            conn.setblocking(True)
            logger.debug(f"[SSH] Accepted connection from {addr[0]}:{addr[1]}")

            handler = ConnectionHandler(
                conn,
                self.host_key,
                self.authenticator,
                self.supervisor,
                self.builder,
                self.settings,
            )
            # 핸드셰이크는 별도 태스크에서 진행: 느린 클라이언트가 accept 루프를 막지 않음
            task = asyncio.create_task(handler.run())
            self._connections.add(task)
            task.add_done_callback(self._connections.discard)

    async def close(self) -> None:
        """accept 중단 후 살아있는 연결 종료"""
        self._closing = True
        if self._serve_task is not None and self._serve_task is not asyncio.current_task():
            self._serve_task.cancel()
        if self._sock is not None:
            self._sock.close()

        connections = list(self._connections)
        for task in connections:
            task.cancel()
        if connections:
            await asyncio.gather(*connections, return_exceptions=True)
        logger.info("[SSH] Listener closed")
