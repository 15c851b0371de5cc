from abc import ABC, abstractmethod

from sshgate.domains.keys.models.public_key import PublicKey


class IdentityLookupInterface(ABC):
    """공개키 → 계정 식별자 조회 인터페이스"""

    @abstractmethod
    async def search_by_content(self, content: str) -> PublicKey:
        """authorized_keys 형식 공개키 내용으로 등록된 키 조회

        Args:
            content: "<type> <base64>" 형식의 공개키

        Returns:
            PublicKey: 매칭된 키 레코드

        Raises:
            KeyNotFoundException: 매칭되는 키가 없을 때
            KeyLookupException: 조회 자체가 실패했을 때
        """
        pass
