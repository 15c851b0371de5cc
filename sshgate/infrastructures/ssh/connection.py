"""SSH Connection Handler

연결 하나당 하나의 태스크: 핸드셰이크 → 인증 대기 → 채널 accept 루프
"""

import asyncio
import socket
import threading
from typing import List, Optional, Set, Tuple

import paramiko

from sshgate.core.config import Settings, settings as default_settings
from sshgate.core.logger import logger
from sshgate.core.exceptions import ErrorCode, HandshakeException
from sshgate.domains.command.services.command_builder import CommandBuilder
from sshgate.domains.command.services.supervisor import ProcessSupervisor
from sshgate.domains.keys.services.authenticator import Authenticator
from sshgate.infrastructures.ssh.channel_stream import ParamikoChannelStream
from sshgate.infrastructures.ssh.models.channel_result import ChannelResult
from sshgate.infrastructures.ssh.models.connection import ConnectionInfo
from sshgate.infrastructures.ssh.server_interface import GitSSHServerInterface
from sshgate.infrastructures.ssh.session import ChannelSessionHandler
from sshgate.infrastructures.ssh.utils.ssh_utils import run_in_executor

ACCEPT_POLL_INTERVAL = 1.0
AUTH_POLL_INTERVAL = 0.1


def _supported(available: Tuple[str, ...], requested: List[str], kind: str) -> Tuple[str, ...]:
    """요청된 알고리즘 중 paramiko가 지원하는 것만 요청 순서대로 선택"""
    chosen = tuple(name for name in requested if name in available)
    skipped = [name for name in requested if name not in available]
    if skipped:
        logger.debug(f"[SSH] Unsupported {kind} skipped: {skipped}")
    if not chosen:
        logger.warning(f"[SSH] None of the configured {kind} are supported, using defaults")
        return tuple(available)
    return chosen


class ConnectionHandler:
    """SSH 연결 핸들러"""

    def __init__(
        self,
        sock: socket.socket,
        host_key: paramiko.PKey,
        authenticator: Authenticator,
        supervisor: ProcessSupervisor,
        builder: Optional[CommandBuilder] = None,
        settings: Optional[Settings] = None
    ):
        self.sock = sock
        self.host_key = host_key
        self.authenticator = authenticator
        self.supervisor = supervisor
        self.settings = settings or default_settings
        self.builder = builder or CommandBuilder(self.settings)

        try:
            host, port = sock.getpeername()[:2]
            self.remote_addr = f"{host}:{port}"
        except OSError:
            self.remote_addr = "unknown"

        self.transport: Optional[paramiko.Transport] = None
        self.info: Optional[ConnectionInfo] = None
        self.results: List[ChannelResult] = []
        self._channel_tasks: Set[asyncio.Task] = set()

    def _create_transport(self) -> paramiko.Transport:
        transport = paramiko.Transport(self.sock)
        options = transport.get_security_options()
        options.ciphers = _supported(options.ciphers, self.settings.SSH_CIPHERS, "ciphers")
        options.digests = _supported(options.digests, self.settings.SSH_MACS, "MACs")
        transport.add_server_key(self.host_key)
        return transport

    async def run(self) -> List[ChannelResult]:
        """
        연결 처리. 연결이 끊길 때까지 반환하지 않음

        Returns:
            채널별 처리 결과 목록
        """
        loop = asyncio.get_running_loop()
        iface = GitSSHServerInterface(self.authenticator, loop, self.remote_addr, self.settings)

        try:
            self.transport = self._create_transport()
            logger.debug(f"[SSH] Handshaking for {self.remote_addr}")
            await self._handshake(iface)

            self.info = await self._await_authentication(iface)
            logger.debug(
                f"[SSH] Connection from {self.info.remote_addr} ({self.info.client_version}) as key-{self.info.key_id}"
            )

            await self._serve_channels(iface)

        except HandshakeException as e:
            if e.error_code == ErrorCode.HANDSHAKE_TERMINATED:
                logger.warning(f"[SSH] {e}")
            else:
                logger.error(f"[SSH] {e.to_log_dict()}")

        except asyncio.CancelledError:
            for task in self._channel_tasks:
                task.cancel()
            raise

        finally:
            for requests in iface.close_streams():
                requests.close()
            if self.transport is not None:
                self.transport.close()
            else:
                self.sock.close()
            if self._channel_tasks:
                await asyncio.gather(*self._channel_tasks, return_exceptions=True)

        if self.results:
            failed = [r for r in self.results if r.error]
            logger.info(
                f"[SSH] Connection {self.remote_addr} closed: {len(self.results)} channel(s), {len(failed)} failed"
            )
        return self.results

    async def _handshake(self, iface: GitSSHServerInterface) -> None:
        try:
            await run_in_executor(self.transport.start_server, server=iface)
        except EOFError as e:
            raise HandshakeException(
                remote_addr=self.remote_addr,
                detail=str(e) or "EOF",
                error_code=ErrorCode.HANDSHAKE_TERMINATED,
                original_exception=e
            )
        except (paramiko.SSHException, socket.error) as e:
            raise HandshakeException(
                remote_addr=self.remote_addr,
                detail=str(e),
                original_exception=e
            )

    async def _await_authentication(self, iface: GitSSHServerInterface) -> ConnectionInfo:
        """공개키 인증 완료 대기 후 연결 정보 고정 (LOGIN_GRACE_TIME 내)"""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.settings.LOGIN_GRACE_TIME
        while self.transport.is_active() and not self.transport.is_authenticated():
            if loop.time() >= deadline:
                raise HandshakeException(
                    remote_addr=self.remote_addr,
                    detail=f"not authenticated within {self.settings.LOGIN_GRACE_TIME}s",
                    error_code=ErrorCode.HANDSHAKE_TIMEOUT,
                )
            await asyncio.sleep(AUTH_POLL_INTERVAL)

        permissions = iface.permissions
        if not self.transport.is_authenticated() or permissions is None or not permissions.key_id:
            raise HandshakeException(
                remote_addr=self.remote_addr,
                detail="public key authentication failed",
                error_code=ErrorCode.HANDSHAKE_TERMINATED,
            )

        return ConnectionInfo(
            remote_addr=self.remote_addr,
            client_version=self.transport.remote_version,
            key_id=permissions.key_id,
        )

    async def _serve_channels(self, iface: GitSSHServerInterface) -> None:
        loop = asyncio.get_running_loop()
        channels: "asyncio.Queue[Optional[paramiko.Channel]]" = asyncio.Queue()
        threading.Thread(
            target=self._accept_loop,
            args=(loop, channels),
            name=f"sshgate-accept-{self.remote_addr}",
            daemon=True,
        ).start()

        while True:
            channel = await channels.get()
            if channel is None:
                return

            requests = iface.get_request_stream(channel.get_id())
            if requests is None:
                logger.error(f"[SSH] Error accepting channel {channel.get_id()}: no request stream")
                channel.close()
                continue

            handler = ChannelSessionHandler(
                ParamikoChannelStream(channel),
                requests,
                self.info,
                self.supervisor,
                self.builder,
                self.settings,
            )
            task = asyncio.create_task(handler.run())
            self._channel_tasks.add(task)
            task.add_done_callback(lambda t, chanid=channel.get_id(): self._on_channel_done(iface, chanid, t))

    def _accept_loop(self, loop: asyncio.AbstractEventLoop, channels: asyncio.Queue) -> None:
        """연결 전용 스레드에서 채널 accept. transport가 끊기면 None으로 종료 알림"""
        try:
            while self.transport.is_active():
                channel = self.transport.accept(ACCEPT_POLL_INTERVAL)
                if channel is not None:
                    loop.call_soon_threadsafe(channels.put_nowait, channel)
            loop.call_soon_threadsafe(channels.put_nowait, None)
        except RuntimeError:
            # 이벤트 루프가 이미 닫힘
            pass

    def _on_channel_done(self, iface: GitSSHServerInterface, chanid: int, task: asyncio.Task) -> None:
        self._channel_tasks.discard(task)
        iface.release_stream(chanid)
        if task.cancelled():
            return

        error = task.exception()
        if error is not None:
            logger.error(f"[SSH] Channel {chanid} handler crashed: {error!r}")
            return

        result = task.result()
        self.results.append(result)
        logger.info(f"[SSH] {self.remote_addr} {result}")
