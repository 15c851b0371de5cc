from typing import Dict, List

from pydantic import BaseModel, Field, field_validator


class Command(BaseModel):
    """정제된 실행 명령 모델"""
    argv: List[str]
    env: Dict[str, str] = Field(default_factory=dict)
    original: str = ""

    @field_validator("argv")
    @classmethod
    def _argv_not_empty(cls, value: List[str]) -> List[str]:
        if not value or not value[0]:
            raise ValueError("argv must have an executable")
        return value

    @property
    def executable(self) -> str:
        return self.argv[0]

    @property
    def args(self) -> List[str]:
        return self.argv[1:]

    def __str__(self) -> str:
        return " ".join(self.argv)
