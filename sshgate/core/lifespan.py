"""
Application Lifespan Management
애플리케이션 라이프사이클 관리
"""

from contextlib import asynccontextmanager
from typing import Optional

from sshgate.core.config import Settings, settings as default_settings
from sshgate.core.logger import logger
from sshgate.core.exceptions import ConfigException
from sshgate.domains.command.services.command_builder import CommandBuilder
from sshgate.domains.command.services.supervisor import ProcessSupervisor
from sshgate.domains.keys.repositories.public_key_repository import PublicKeyRepository
from sshgate.domains.keys.services.authenticator import Authenticator
from sshgate.infrastructures.ssh.host_key import HostKeyStore
from sshgate.infrastructures.ssh.listener import Listener
from sshgate.infrastructures.ssh.utils.ssh_utils import configure_executor, shutdown_executor


@asynccontextmanager
async def lifespan(port: Optional[int] = None, settings: Optional[Settings] = None):
    """
    애플리케이션 라이프사이클 관리

    - Startup: I/O 스레드 풀 구성, 키 저장소 초기화, 호스트 키 로드, 리스너 바인딩
    - Shutdown: 리스너 종료, I/O 스레드 풀 정리

    Raises:
        KeyStoreException: 키 저장소 초기화 실패
        HostKeyException: 호스트 키 생성/로드 실패
        ConfigException: 잘못된 포트
        ListenerBindException: 포트 바인딩 실패
    """
    settings = settings or default_settings
    port = settings.SSH_PORT if port is None else port
    if not 0 <= port <= 65535:
        raise ConfigException(detail=f"invalid port {port}")

    # ============ Startup ============
    logger.info(f"{settings.APP_NAME} {settings.APP_VERSION} 시작 중...")
    configure_executor(settings.IO_WORKERS)

    repository = PublicKeyRepository(settings.KEY_DB_PATH)
    await repository.initialize_db()

    host_key = HostKeyStore.for_port(port, settings).load_or_create()

    listener = Listener(
        settings.SSH_HOST,
        port,
        host_key,
        Authenticator(repository),
        ProcessSupervisor(settings),
        CommandBuilder(settings),
        settings,
    )
    listener.start()

    try:
        yield listener
    finally:
        # ============ Shutdown ============
        logger.info(f"{settings.APP_NAME} 종료 중...")
        try:
            await listener.close()
        finally:
            shutdown_executor()
