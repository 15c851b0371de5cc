"""
Public Key Model
공개키 ↔ 계정 식별자 매핑 모델
"""

from datetime import datetime
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

KEY_ID_EXTENSION = "key-id"


class PublicKey(BaseModel):
    """public_key 테이블 레코드"""
    id: int
    owner_id: int
    name: str
    fingerprint: str
    content: str
    created_at: Optional[datetime] = None


class Permissions(BaseModel):
    """Handshake 성공 시 연결 범위로 노출되는 권한 값"""
    model_config = ConfigDict(frozen=True)

    extensions: Dict[str, str] = Field(default_factory=dict)

    @property
    def key_id(self) -> Optional[str]:
        return self.extensions.get(KEY_ID_EXTENSION)

    @classmethod
    def for_key(cls, key: PublicKey) -> "Permissions":
        return cls(extensions={KEY_ID_EXTENSION: str(key.id)})

    @field_validator("extensions")
    @classmethod
    def _key_id_not_empty(cls, value: Dict[str, str]) -> Dict[str, str]:
        if KEY_ID_EXTENSION in value and not value[KEY_ID_EXTENSION]:
            raise ValueError("key-id must not be empty")
        return value
