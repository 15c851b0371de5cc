"""paramiko ServerInterface 구현

연결마다 하나씩 생성됨. 콜백은 paramiko transport 스레드에서 호출되며,
채널 요청은 ChannelRequestStream을 통해 이벤트 루프로 넘겨짐
"""

import asyncio
import threading
from concurrent.futures import Future, TimeoutError as FutureTimeoutError
from typing import Dict, List, Optional

import paramiko

from sshgate.core.config import Settings, settings as default_settings
from sshgate.core.logger import logger
from sshgate.core.exceptions import AuthException, ErrorCode, KeyLookupException
from sshgate.domains.keys.models.public_key import Permissions
from sshgate.domains.keys.services.authenticator import Authenticator
from sshgate.infrastructures.ssh.models.request import RequestKind, SSHRequest
from sshgate.infrastructures.ssh.request_stream import ChannelRequestStream

SESSION_CHANNEL = "session"


def _to_text(value) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


class GitSSHServerInterface(paramiko.ServerInterface):
    """공개키 인증 + session 채널 + env/exec 요청만 허용하는 서버 인터페이스"""

    def __init__(
        self,
        authenticator: Authenticator,
        loop: asyncio.AbstractEventLoop,
        remote_addr: str = "",
        settings: Optional[Settings] = None
    ):
        self.authenticator = authenticator
        self.remote_addr = remote_addr
        self.settings = settings or default_settings
        self._loop = loop
        self._lock = threading.Lock()
        self._streams: Dict[int, ChannelRequestStream] = {}
        self._permissions: Optional[Permissions] = None

    @property
    def permissions(self) -> Optional[Permissions]:
        """마지막으로 성공한 공개키 조회 결과"""
        return self._permissions

    # 인증

    def get_allowed_auths(self, username):
        return "publickey"

    def check_auth_publickey(self, username, key):
        future = asyncio.run_coroutine_threadsafe(
            self.authenticator.authenticate(key), self._loop
        )
        try:
            permissions = future.result(timeout=self.settings.AUTH_TIMEOUT)
        except FutureTimeoutError:
            future.cancel()
            error = KeyLookupException(
                detail=f"no answer for {self.remote_addr} within {self.settings.AUTH_TIMEOUT}s",
                error_code=ErrorCode.KEY_LOOKUP_TIMEOUT
            )
            logger.error(f"[Auth] {error.to_log_dict()}")
            return paramiko.AUTH_FAILED
        except AuthException:
            return paramiko.AUTH_FAILED
        except Exception as e:
            logger.error(f"[Auth] Unexpected error while authenticating {self.remote_addr}: {e}", exc_info=True)
            return paramiko.AUTH_FAILED

        self._permissions = permissions
        return paramiko.AUTH_SUCCESSFUL

    # 전역 요청 (out-of-band) 은 모두 버림

    def check_global_request(self, kind, msg):
        logger.debug(f"[SSH] Discarding global request '{kind}' from {self.remote_addr}")
        return False

    # 채널

    def check_channel_request(self, kind, chanid):
        if kind != SESSION_CHANNEL:
            logger.debug(f"[SSH] Rejecting channel type '{kind}' from {self.remote_addr}")
            return paramiko.OPEN_FAILED_UNKNOWN_CHANNEL_TYPE

        with self._lock:
            self._streams[chanid] = ChannelRequestStream(self._loop, chanid)
        return paramiko.OPEN_SUCCEEDED

    def get_request_stream(self, chanid: int) -> Optional[ChannelRequestStream]:
        with self._lock:
            return self._streams.get(chanid)

    def release_stream(self, chanid: int) -> None:
        with self._lock:
            self._streams.pop(chanid, None)

    def close_streams(self) -> List[ChannelRequestStream]:
        """연결 종료 시 남은 요청 스트림 정리"""
        with self._lock:
            streams = list(self._streams.values())
            self._streams.clear()
        return streams

    def _enqueue(self, channel: paramiko.Channel, request: SSHRequest) -> bool:
        stream = self.get_request_stream(channel.get_id())
        if stream is None:
            logger.warning(f"[SSH] No request stream for channel {channel.get_id()}, dropping '{request.type_name}'")
            return False
        return stream.put(request)

    # 채널 요청

    def check_channel_env_request(self, channel, name, value):
        request = SSHRequest(kind=RequestKind.ENV, type_name="env", payload=(name, value))
        return self._enqueue(channel, request)

    def check_channel_exec_request(self, channel, command):
        reply: Future = Future()
        request = SSHRequest(kind=RequestKind.EXEC, type_name="exec", payload=command, reply=reply)
        if not self._enqueue(channel, request):
            return False

        try:
            return reply.result(timeout=self.settings.EXEC_REPLY_TIMEOUT)
        except FutureTimeoutError:
            logger.error(
                f"[SSH] No reply for exec {_to_text(command)!r} on channel {channel.get_id()} "
                f"within {self.settings.EXEC_REPLY_TIMEOUT}s"
            )
            return False

    def check_channel_shell_request(self, channel):
        self._enqueue(channel, SSHRequest(kind=RequestKind.OTHER, type_name="shell"))
        return False

    def check_channel_pty_request(self, channel, term, width, height, pixelwidth, pixelheight, modes):
        self._enqueue(channel, SSHRequest(kind=RequestKind.OTHER, type_name="pty-req"))
        return False

    def check_channel_subsystem_request(self, channel, name):
        self._enqueue(channel, SSHRequest(kind=RequestKind.OTHER, type_name="subsystem", payload=name))
        return False
