import asyncio
import threading
from typing import Optional

from sshgate.core.logger import logger
from sshgate.infrastructures.ssh.models.request import RequestKind, SSHRequest


class ChannelRequestStream:
    """채널 요청 큐

    paramiko transport 스레드에서 put, 이벤트 루프의 채널 핸들러에서 get.
    도착 순서가 그대로 유지됨. 닫힌 뒤 도착한 요청과 두 번째 exec 요청은 즉시 거절됨
    """

    def __init__(self, loop: asyncio.AbstractEventLoop, channel_id: int):
        self.channel_id = channel_id
        self._loop = loop
        self._queue: "asyncio.Queue[SSHRequest]" = asyncio.Queue()
        self._lock = threading.Lock()
        self._closed = False
        self._exec_taken = False

    @property
    def closed(self) -> bool:
        return self._closed

    def put(self, request: SSHRequest) -> bool:
        """transport 스레드에서 호출. 채널이 이미 닫혔거나 exec가 이미 들어왔으면 False

        채널당 exec는 하나뿐이므로 두 번째 exec는 응답 대기 없이 바로 거절
        """
        with self._lock:
            if self._closed:
                return False
            if request.kind == RequestKind.EXEC:
                if self._exec_taken:
                    logger.debug(f"[SSH] Channel {self.channel_id} already has an exec, refusing")
                    return False
                self._exec_taken = True
            self._loop.call_soon_threadsafe(self._deliver, request)
            return True

    def _deliver(self, request: SSHRequest) -> None:
        if self._closed:
            logger.debug(f"[SSH] Channel {self.channel_id} closed, refusing '{request.type_name}'")
            request.answer(False)
            return
        self._queue.put_nowait(request)

    async def get(self, timeout: Optional[float] = None) -> Optional[SSHRequest]:
        """다음 요청. 타임아웃 또는 닫힌 큐가 비었으면 None"""
        if self._closed and self._queue.empty():
            return None
        try:
            if timeout is None:
                return await self._queue.get()
            return await asyncio.wait_for(self._queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None

    def close(self) -> None:
        """이벤트 루프에서 호출. 남은 요청은 모두 거절"""
        with self._lock:
            self._closed = True
        while not self._queue.empty():
            request = self._queue.get_nowait()
            logger.debug(f"[SSH] Channel {self.channel_id} closed, refusing '{request.type_name}'")
            request.answer(False)
