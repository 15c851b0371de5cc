from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from sshgate.core.exceptions import BaseAppException


class ChannelResult(BaseModel):
    """채널 하나의 처리 결과. 소유 연결 태스크가 수집"""
    channel_id: int
    argv: List[str] = Field(default_factory=list)
    exit_status: Optional[int] = None
    error: Optional[Dict[str, Any]] = None

    @property
    def successful(self) -> bool:
        return self.error is None and self.exit_status == 0

    @property
    def error_code(self) -> Optional[int]:
        return self.error["error_code"] if self.error else None

    @classmethod
    def failed(cls, channel_id: int, error: BaseAppException, argv: Optional[List[str]] = None) -> "ChannelResult":
        return cls(channel_id=channel_id, argv=argv or [], error=error.to_dict())

    def __str__(self) -> str:
        if self.error:
            return f"channel {self.channel_id}: failed [{self.error_code}] {self.error.get('detail', self.error['message'])}"
        if self.exit_status is None:
            return f"channel {self.channel_id}: closed without exec"
        return f"channel {self.channel_id}: '{' '.join(self.argv)}' exit-status {self.exit_status}"
