"""
Command Builder
정제된 토큰 목록을 실행 가능한 Command로 변환

두 가지 모드:
- direct (SERV_COMMAND 미설정): 클라이언트가 요청한 명령을 그대로 실행
- serv (SERV_COMMAND 설정): 고정된 신뢰 명령을 키 식별자로 파라미터화하여 실행하고
  원래 명령은 SSH_ORIGINAL_COMMAND 환경변수로만 전달
"""

import shutil
from typing import Dict, List, Optional

from sshgate.core.config import Settings, settings as default_settings
from sshgate.core.logger import logger
from sshgate.core.exceptions import CommandNotFoundException, EmptyCommandException
from sshgate.domains.command.models.command import Command

ALLOW_ALL_ENV = "*"


def resolve_executable(name: str) -> str:
    """PATH 기준 실행 파일 경로 해석

    Raises:
        CommandNotFoundException: 실행 파일을 찾지 못했을 때
    """
    path = shutil.which(name)
    if path is None:
        raise CommandNotFoundException(executable=name)
    return path


def filter_environment(environ: Dict[str, str], allowlist: List[str]) -> Dict[str, str]:
    """허용 목록에 있는 환경변수만 남김"""
    if ALLOW_ALL_ENV in allowlist:
        return dict(environ)

    allowed = {}
    for name, value in environ.items():
        if name in allowlist:
            allowed[name] = value
        else:
            logger.debug(f"[Exec] Env {name} is not allowed, skipped")
    return allowed


class CommandBuilder:
    """Command 생성기"""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or default_settings

    @property
    def serv_mode(self) -> bool:
        return bool(self.settings.SERV_COMMAND)

    def build(
        self,
        tokens: List[str],
        key_id: str,
        environ: Optional[Dict[str, str]] = None
    ) -> Command:
        """
        Args:
            tokens: sanitize_command 결과
            key_id: 연결에 고정된 키 식별자
            environ: 채널에서 수집한 env 요청 값

        Returns:
            argv[0]이 실행 파일 경로로 해석된 Command

        Raises:
            EmptyCommandException: 토큰이 없을 때
            CommandNotFoundException: 실행 파일을 찾지 못했을 때
        """
        if not tokens:
            raise EmptyCommandException()

        original = " ".join(tokens)
        env = filter_environment(environ or {}, self.settings.ENV_ALLOWLIST)

        if self.serv_mode:
            argv = [
                resolve_executable(self.settings.SERV_COMMAND),
                "serv",
                f"key-{key_id}",
                f"--config={self.settings.CUSTOM_CONF}",
            ]
            env["SSH_ORIGINAL_COMMAND"] = original
        else:
            argv = [resolve_executable(tokens[0])] + tokens[1:]

        logger.info(f"[Exec] Arguments: {argv}")
        return Command(argv=argv, env=env, original=original)
