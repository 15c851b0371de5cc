from concurrent.futures import Future
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict


class RequestKind(str, Enum):
    """채널 요청 종류"""
    ENV = "env"
    EXEC = "exec"
    OTHER = "other"


class SSHRequest(BaseModel):
    """채널에 도착한 요청 이벤트

    exec 요청은 transport 스레드가 응답을 기다리는 reply Future를 가짐
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    kind: RequestKind
    type_name: str
    payload: Any = None
    reply: Optional[Future] = None

    def answer(self, ok: bool) -> None:
        """응답 전달. 이미 응답했으면 무시"""
        if self.reply is not None and not self.reply.done():
            self.reply.set_result(ok)

    @property
    def answered(self) -> bool:
        return self.reply is None or self.reply.done()
