"""
Public Key Authenticator
제시된 공개키를 계정 식별자로 해석하는 유일한 인가 지점
"""

import paramiko

from sshgate.core.logger import logger
from sshgate.core.exceptions import (
    AuthException,
    KeyLookupException,
    KeyNotFoundException,
)
from sshgate.domains.keys.interfaces.identity_lookup import IdentityLookupInterface
from sshgate.domains.keys.models.public_key import Permissions


def canonicalize(key: paramiko.PKey) -> str:
    """공개키를 authorized_keys 표준 텍스트 형식으로 변환 ("<type> <base64>")"""
    return f"{key.get_name()} {key.get_base64()}".strip()


class Authenticator:
    """공개키 인증 서비스"""

    def __init__(self, lookup: IdentityLookupInterface):
        """
        Args:
            lookup: 외부 공개키 조회 협력자 (의존성 주입)
        """
        self.lookup = lookup

    async def authenticate(self, key: paramiko.PKey) -> Permissions:
        """
        공개키 인증

        Args:
            key: 클라이언트가 제시한 공개키

        Returns:
            key-id 확장값을 담은 Permissions

        Raises:
            KeyNotFoundException: 등록되지 않은 키
            KeyLookupException: 조회 실패
        """
        content = canonicalize(key)
        try:
            public_key = await self.lookup.search_by_content(content)
        except KeyNotFoundException:
            logger.warning(f"[Auth] Unknown public key: {key.get_name()} {key.fingerprint}")
            raise
        except AuthException as e:
            logger.error(f"[Auth] SearchPublicKeyByContent: {e}")
            raise
        except Exception as e:
            logger.error(f"[Auth] SearchPublicKeyByContent: {e}", exc_info=True)
            raise KeyLookupException(detail=str(e), original_exception=e)

        logger.debug(f"[Auth] Key resolved: key-{public_key.id} (owner {public_key.owner_id})")
        return Permissions.for_key(public_key)
