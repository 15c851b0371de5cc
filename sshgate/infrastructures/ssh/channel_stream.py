import asyncio
import socket
import threading
from concurrent.futures import CancelledError as FutureCancelledError, TimeoutError as FutureTimeoutError
from typing import Optional

import paramiko
from paramiko.channel import Channel

from sshgate.core.logger import logger
from sshgate.infrastructures.ssh.interfaces.channel_stream import ChannelStreamInterface
from sshgate.infrastructures.ssh.utils.ssh_utils import run_in_executor

# 수신 스레드가 앞서 읽어둘 수 있는 청크 수 (이 이상은 소비될 때까지 대기)
READ_AHEAD_CHUNKS = 4
HAND_OVER_POLL_INTERVAL = 1.0


class ParamikoChannelStream(ChannelStreamInterface):
    """paramiko Channel 기반 채널 스트림 구현체

    송신은 공용 I/O 풀에서, 수신은 채널 전용 스레드에서 수행.
    클라이언트가 입력을 닫지 않고 놀고 있어도 공용 풀 스레드를 점유하지 않음
    """

    def __init__(self, channel: Channel):
        self._channel = channel
        self._closed = False
        self._eof = False
        self._chunks: Optional[asyncio.Queue] = None
        self._reader: Optional[threading.Thread] = None

    @property
    def channel_id(self) -> int:
        return self._channel.get_id()

    @property
    def closed(self) -> bool:
        return self._closed or self._channel.closed

    @property
    def channel(self) -> Channel:
        return self._channel

    async def read(self, size: int) -> bytes:
        """채널 입력 읽기. 수신 스레드는 최초 호출의 size 단위로 읽음"""
        if self._closed or self._eof:
            return b""
        if self._reader is None:
            self._start_reader(asyncio.get_running_loop(), size)

        data = await self._chunks.get()
        if not data:
            self._eof = True
        return data

    def _start_reader(self, loop: asyncio.AbstractEventLoop, size: int) -> None:
        self._chunks = asyncio.Queue(maxsize=READ_AHEAD_CHUNKS)
        self._reader = threading.Thread(
            target=self._read_loop,
            args=(loop, size),
            name=f"sshgate-recv-{self.channel_id}",
            daemon=True,
        )
        self._reader.start()

    def _read_loop(self, loop: asyncio.AbstractEventLoop, size: int) -> None:
        while True:
            try:
                data = self._channel.recv(size)
            except (socket.error, EOFError, paramiko.SSHException) as e:
                logger.debug(f"[SSH] Channel {self.channel_id} read ended: {e}")
                data = b""

            if not self._hand_over(loop, data) or not data:
                return

    def _hand_over(self, loop: asyncio.AbstractEventLoop, data: bytes) -> bool:
        """청크를 이벤트 루프 큐에 전달. 채널이나 루프가 닫히면 False"""
        try:
            future = asyncio.run_coroutine_threadsafe(self._chunks.put(data), loop)
        except RuntimeError:
            return False

        while True:
            try:
                future.result(timeout=HAND_OVER_POLL_INTERVAL)
                return True
            except FutureTimeoutError:
                if self._closed or loop.is_closed():
                    future.cancel()
                    return False
            except FutureCancelledError:
                return False

    async def write(self, data: bytes) -> None:
        await run_in_executor(self._channel.sendall, data)

    async def write_stderr(self, data: bytes) -> None:
        await run_in_executor(self._channel.sendall_stderr, data)

    async def send_exit_status(self, status: int) -> None:
        await run_in_executor(self._channel.send_exit_status, status)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await run_in_executor(self._channel.shutdown_write)
            await run_in_executor(self._channel.close)
            logger.debug(f"[SSH] Channel {self.channel_id} closed")
        except Exception as e:
            logger.warning(f"[SSH] Error while closing channel {self.channel_id}: {e}")
