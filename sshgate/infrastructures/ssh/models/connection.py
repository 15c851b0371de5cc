from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ConnectionInfo(BaseModel):
    """인증 완료된 SSH 연결 정보. 핸드셰이크 이후 변경 불가"""
    model_config = ConfigDict(frozen=True)

    remote_addr: str
    client_version: Optional[str] = None
    key_id: str = Field(..., min_length=1)
