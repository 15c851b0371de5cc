from abc import ABC, abstractmethod


class ChannelStreamInterface(ABC):
    """SSH 세션 채널 스트림 인터페이스

    데이터 스트림과 별도의 에러 스트림을 가진 전이중 바이트 스트림
    """

    @property
    @abstractmethod
    def channel_id(self) -> int:
        """채널 ID"""
        pass

    @property
    @abstractmethod
    def closed(self) -> bool:
        """채널이 닫혔는지 여부"""
        pass

    @abstractmethod
    async def read(self, size: int) -> bytes:
        """채널 입력 읽기

        Returns:
            bytes: 읽은 데이터. EOF 또는 채널 종료 시 b""
        """
        pass

    @abstractmethod
    async def write(self, data: bytes) -> None:
        """데이터 스트림에 쓰기"""
        pass

    @abstractmethod
    async def write_stderr(self, data: bytes) -> None:
        """에러 스트림에 쓰기"""
        pass

    @abstractmethod
    async def send_exit_status(self, status: int) -> None:
        """exit-status 요청 전송 (4바이트 big-endian)"""
        pass

    @abstractmethod
    async def close(self) -> None:
        """채널 종료. 여러 번 호출해도 안전해야 함"""
        pass
