import asyncio
import functools
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

from sshgate.core.config import settings

_executor: Optional[ThreadPoolExecutor] = None
_executor_workers = 0


def configure_executor(max_workers: int) -> ThreadPoolExecutor:
    """주입된 설정 기준으로 I/O 스레드 풀 크기 지정. 크기가 바뀌면 새 풀로 교체"""
    global _executor, _executor_workers
    if _executor is not None and _executor_workers == max_workers:
        return _executor

    previous = _executor
    _executor = ThreadPoolExecutor(
        max_workers=max_workers,
        thread_name_prefix="sshgate-io",
    )
    _executor_workers = max_workers
    if previous is not None:
        previous.shutdown(wait=False)
    return _executor


def get_executor() -> ThreadPoolExecutor:
    """paramiko 블로킹 호출 전용 스레드 풀 (sendall, 핸드셰이크 등 짧은 호출)

    채널 수신(recv)과 채널 accept 대기는 이 풀을 쓰지 않음. 각각 전용 스레드가 있음
    """
    if _executor is None:
        return configure_executor(settings.IO_WORKERS)
    return _executor


def executor_workers() -> int:
    return _executor_workers


def shutdown_executor() -> None:
    global _executor, _executor_workers
    if _executor is not None:
        _executor.shutdown(wait=False, cancel_futures=True)
        _executor = None
        _executor_workers = 0


async def run_in_executor(func, *args, **kwargs):
    loop = asyncio.get_running_loop()
    partial_func = functools.partial(func, *args, **kwargs)
    return await loop.run_in_executor(get_executor(), partial_func)
