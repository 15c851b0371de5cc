"""SSH Host Key Store

포트별 RSA 호스트 키를 로드하거나 최초 실행 시 생성
"""

import os
import tempfile
from pathlib import Path
from typing import Optional

import paramiko

from sshgate.core.config import Settings, settings as default_settings
from sshgate.core.logger import logger
from sshgate.core.exceptions import ErrorCode, HostKeyException


class HostKeyStore:
    """RSA 호스트 키 저장소

    생성은 임시 파일에 쓴 뒤 os.link로 최종 경로에 연결하므로, 동시에 여러 프로세스가
    처음 실행되어도 먼저 연결된 키 하나만 남고 반쯤 쓰인 파일을 읽는 일이 없음
    """

    def __init__(self, key_path: Path, bits: int = 3072):
        self.key_path = Path(key_path)
        self.bits = bits

    @classmethod
    def for_port(cls, port: int, settings: Optional[Settings] = None) -> "HostKeyStore":
        settings = settings or default_settings
        return cls(settings.host_key_path(port), bits=settings.HOST_KEY_BITS)

    def load_or_create(self) -> paramiko.RSAKey:
        """
        Returns:
            paramiko.RSAKey: 호스트 키

        Raises:
            HostKeyException: 생성 또는 파싱 실패 시
        """
        if not self.key_path.exists():
            self._generate()
        return self._load()

    def _generate(self) -> None:
        try:
            self.key_path.parent.mkdir(parents=True, exist_ok=True)
            key = paramiko.RSAKey.generate(self.bits)

            fd, tmp_path = tempfile.mkstemp(
                dir=self.key_path.parent, prefix=f".{self.key_path.name}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w") as f:
                    key.write_private_key(f)
                try:
                    os.link(tmp_path, self.key_path)
                    logger.info(f"[SSH] New private key is generated: {self.key_path}")
                except FileExistsError:
                    logger.debug(f"[SSH] Host key was created concurrently: {self.key_path}")
            finally:
                os.unlink(tmp_path)

        except (OSError, ValueError, paramiko.SSHException) as e:
            raise HostKeyException(
                key_path=str(self.key_path),
                detail=str(e),
                error_code=ErrorCode.HOST_KEY_GENERATE_FAILED,
                original_exception=e
            )

    def _load(self) -> paramiko.RSAKey:
        try:
            key = paramiko.RSAKey.from_private_key_file(str(self.key_path))
        except (OSError, ValueError, paramiko.SSHException) as e:
            raise HostKeyException(
                key_path=str(self.key_path),
                detail=f"Failed to parse private key: {e}",
                error_code=ErrorCode.HOST_KEY_LOAD_FAILED,
                original_exception=e
            )

        logger.debug(f"[SSH] Host key loaded: {self.key_path} ({key.get_name()} {key.fingerprint})")
        return key
