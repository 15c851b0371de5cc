"""커스텀 예외 클래스 정의

예외 계층도:
    BaseAppException
    |-- GeneralException (일반 예외)
    |   +-- ConfigException
    |-- TransportException (SSH 전송 계층 예외)
    |   |-- ListenerBindException
    |   |-- HandshakeException
    |   |-- HostKeyException
    |   +-- ChannelException
    |-- AuthException (공개키 인증 예외)
    |   |-- KeyNotFoundException
    |   |-- KeyLookupException
    |   +-- KeyStoreException
    |-- CommandException (명령 정제/해석 예외)
    |   |-- EmptyCommandException
    |   |-- CommandNotFoundException
    |   +-- CatTargetException
    +-- ProcessException (프로세스 수명주기 예외)
        |-- CredentialException
        |-- ProcessStartException
        |-- ProcessWaitException
        |-- ProcessTimeoutException
        +-- SessionLimitExceededException
"""

from typing import Optional, Dict, Any, List
from sshgate.core.exceptions.error_codes import ErrorCode, get_error_category, ErrorCategory


class BaseAppException(Exception):
    """Base application exception. All custom exceptions inherit from this."""

    def __init__(
        self,
        error_code: ErrorCode,
        detail: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        self.error_code = error_code
        self.detail = detail
        self.context = context or {}
        self.original_exception = original_exception

        message = error_code.message
        if detail:
            message = f"{message}: {detail}"

        super().__init__(message)

    @property
    def code(self) -> int:
        return self.error_code.code

    @property
    def category(self) -> ErrorCategory:
        return get_error_category(self.code)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for structured results"""
        result = {
            "error_code": self.code,
            "message": self.error_code.message,
            "category": self.category.value,
        }
        if self.detail:
            result["detail"] = self.detail
        return result

    def to_log_dict(self) -> Dict[str, Any]:
        """Convert to logging dictionary with more information"""
        log_data = self.to_dict()
        if self.context:
            log_data["context"] = self.context
        if self.original_exception:
            log_data["original_error"] = {
                "type": type(self.original_exception).__name__,
                "message": str(self.original_exception),
            }
        return log_data

    def __str__(self) -> str:
        return f"[{self.code}] {self.error_code.message}" + (
            f": {self.detail}" if self.detail else ""
        )

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"code={self.code}, "
            f"message='{self.error_code.message}', "
            f"detail='{self.detail}'"
            f")"
        )


# General Exceptions (1XXX)
class GeneralException(BaseAppException):
    """General exception"""
    pass


class ConfigException(GeneralException):
    """Configuration exception"""
    def __init__(self, detail: Optional[str] = None, **kwargs):
        super().__init__(ErrorCode.CONFIG_ERROR, detail=detail, **kwargs)


# Transport Exceptions (2XXX)
class TransportException(BaseAppException):
    """SSH transport related base exception"""
    pass


class ListenerBindException(TransportException):
    """Listener could not bind host:port"""
    def __init__(self, host: str, port: int, detail: Optional[str] = None, **kwargs):
        super().__init__(
            ErrorCode.LISTENER_BIND_FAILED,
            detail=detail,
            context={"host": host, "port": port},
            **kwargs
        )


class HandshakeException(TransportException):
    """SSH handshake exception"""
    def __init__(
        self,
        remote_addr: Optional[str] = None,
        detail: Optional[str] = None,
        error_code: ErrorCode = ErrorCode.HANDSHAKE_FAILED,
        **kwargs
    ):
        context = {}
        if remote_addr:
            context["remote_addr"] = remote_addr
        super().__init__(error_code, detail=detail, context=context, **kwargs)


class HostKeyException(TransportException):
    """Host key generation/parse exception"""
    def __init__(
        self,
        key_path: Optional[str] = None,
        detail: Optional[str] = None,
        error_code: ErrorCode = ErrorCode.HOST_KEY_LOAD_FAILED,
        **kwargs
    ):
        context = {}
        if key_path:
            context["key_path"] = key_path
        super().__init__(error_code, detail=detail, context=context, **kwargs)


class ChannelException(TransportException):
    """SSH channel exception"""
    def __init__(
        self,
        channel_id: Optional[int] = None,
        detail: Optional[str] = None,
        error_code: ErrorCode = ErrorCode.CHANNEL_ERROR,
        **kwargs
    ):
        context = {}
        if channel_id is not None:
            context["channel_id"] = channel_id
        super().__init__(error_code, detail=detail, context=context, **kwargs)


# Auth Exceptions (3XXX)
class AuthException(BaseAppException):
    """Public key authentication base exception"""
    pass


class KeyNotFoundException(AuthException):
    """No identity is registered for the presented key"""
    def __init__(self, fingerprint: Optional[str] = None, **kwargs):
        context = {}
        if fingerprint:
            context["fingerprint"] = fingerprint
        super().__init__(
            ErrorCode.KEY_NOT_FOUND,
            detail=f"no identity for key {fingerprint}" if fingerprint else None,
            context=context,
            **kwargs
        )


class KeyLookupException(AuthException):
    """Identity lookup collaborator failed"""
    def __init__(
        self,
        detail: Optional[str] = None,
        error_code: ErrorCode = ErrorCode.KEY_LOOKUP_FAILED,
        **kwargs
    ):
        super().__init__(error_code, detail=detail, **kwargs)


class KeyStoreException(AuthException):
    """Public key store exception"""
    def __init__(
        self,
        db_path: Optional[str] = None,
        detail: Optional[str] = None,
        error_code: ErrorCode = ErrorCode.KEY_STORE_ERROR,
        **kwargs
    ):
        context = {}
        if db_path:
            context["db_path"] = db_path
        super().__init__(error_code, detail=detail, context=context, **kwargs)


# Command Exceptions (4XXX)
class CommandException(BaseAppException):
    """Command sanitize/resolve base exception"""
    def __init__(
        self,
        error_code: ErrorCode,
        command: Optional[str] = None,
        detail: Optional[str] = None,
        **kwargs
    ):
        context = kwargs.pop("context", {})
        if command:
            context["command"] = command
        super().__init__(error_code, detail=detail, context=context, **kwargs)


class EmptyCommandException(CommandException):
    """Sanitized command has no tokens"""
    def __init__(self, command: Optional[str] = None, **kwargs):
        super().__init__(ErrorCode.COMMAND_EMPTY, command=command, **kwargs)


class CommandNotFoundException(CommandException):
    """Executable could not be resolved"""
    def __init__(self, executable: str, **kwargs):
        super().__init__(
            ErrorCode.COMMAND_NOT_FOUND,
            detail=f"cannot find '{executable}'",
            context={"executable": executable},
            **kwargs
        )


class CatTargetException(CommandException):
    """cat fast path target could not be opened"""
    def __init__(self, path: Optional[str] = None, detail: Optional[str] = None, **kwargs):
        super().__init__(
            ErrorCode.CAT_TARGET_FAILED,
            detail=detail,
            context={"path": path} if path else {},
            **kwargs
        )


# Process Exceptions (5XXX)
class ProcessException(BaseAppException):
    """Process lifecycle base exception"""
    def __init__(
        self,
        error_code: ErrorCode,
        argv: Optional[List[str]] = None,
        detail: Optional[str] = None,
        **kwargs
    ):
        context = kwargs.pop("context", {})
        if argv:
            context["argv"] = argv
        super().__init__(error_code, detail=detail, context=context, **kwargs)


class CredentialException(ProcessException):
    """Effective uid/gid could not be resolved"""
    def __init__(self, detail: Optional[str] = None, **kwargs):
        super().__init__(ErrorCode.PROCESS_CREDENTIAL_FAILED, detail=detail, **kwargs)


class ProcessStartException(ProcessException):
    """Pipe setup or process start failed"""
    def __init__(self, argv: Optional[List[str]] = None, detail: Optional[str] = None, **kwargs):
        super().__init__(ErrorCode.PROCESS_START_FAILED, argv=argv, detail=detail, **kwargs)


class ProcessWaitException(ProcessException):
    """Waiting for process exit failed"""
    def __init__(self, argv: Optional[List[str]] = None, detail: Optional[str] = None, **kwargs):
        super().__init__(ErrorCode.PROCESS_WAIT_FAILED, argv=argv, detail=detail, **kwargs)


class ProcessTimeoutException(ProcessException):
    """Process ran past its deadline"""
    def __init__(self, timeout_seconds: float, argv: Optional[List[str]] = None, **kwargs):
        super().__init__(
            ErrorCode.PROCESS_TIMEOUT,
            argv=argv,
            detail=f"killed after {timeout_seconds}s",
            context={"timeout_seconds": timeout_seconds},
            **kwargs
        )


class SessionLimitExceededException(ProcessException):
    """Concurrent session bound reached"""
    def __init__(self, limit: int, **kwargs):
        super().__init__(
            ErrorCode.SESSION_LIMIT_EXCEEDED,
            detail=f"limit is {limit}",
            context={"limit": limit},
            **kwargs
        )
