from pydantic_settings import BaseSettings, SettingsConfigDict
from pathlib import Path
from typing import List, Optional
from pydantic import Field


class Settings(BaseSettings):
    # 환경 설정
    ENV: str = Field("production", pattern="^(development|staging|production)$")

    # 기본 애플리케이션 설정
    APP_NAME: str = "sshgate"
    APP_VERSION: str = "0.1.0"

    # 로깅 설정
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(funcName)s() - %(message)s"
    LOG_DIR: str = "logs"

    # SSH 리스너 설정
    SSH_HOST: str = "0.0.0.0"
    SSH_PORT: int = 9393
    SSH_CIPHERS: List[str] = [
        "aes128-ctr", "aes192-ctr", "aes256-ctr",
        "aes128-gcm@openssh.com", "arcfour256", "arcfour128",
    ]
    SSH_MACS: List[str] = [
        "hmac-sha2-256-etm@openssh.com", "hmac-sha2-256", "hmac-sha1",
    ]

    # 호스트 키 / 키 저장소
    APP_DATA_PATH: Path = Path("data")
    HOST_KEY_BITS: int = 3072
    KEY_DB_PATH: str = "data/public_keys.db"

    # 명령 실행 설정
    SERV_COMMAND: Optional[str] = None
    CUSTOM_CONF: str = "custom/conf/app.ini"
    ENV_ALLOWLIST: List[str] = ["GIT_PROTOCOL", "LANG", "LC_ALL"]

    # 타임아웃 / 동시성 제한 (0 = 제한 없음)
    AUTH_TIMEOUT: float = 10.0
    LOGIN_GRACE_TIME: float = 120.0
    EXEC_REPLY_TIMEOUT: float = 30.0
    EXEC_TIMEOUT: float = 3600.0
    MAX_SESSIONS: int = 0
    IO_WORKERS: int = 512
    READ_BUFFER_SIZE: int = 32768

    @property
    def HOST_KEY_DIR(self) -> Path:
        """호스트 키 저장 디렉토리"""
        return self.APP_DATA_PATH / "ssh"

    def host_key_path(self, port: int) -> Path:
        """포트별 RSA 호스트 키 경로"""
        return self.HOST_KEY_DIR / f"sshgate_{port}.rsa"

    # 환경별 설정값 조정
    def configure_for_environment(self):
        if self.ENV == "development":
            self.LOG_LEVEL = "DEBUG"

    # 환경변수 파일 설정
    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        env_nested_delimiter='__',
        extra='ignore'
    )


settings = Settings()
settings.configure_for_environment()
