"""Exception handling package

This package provides:
- Error codes (error_codes.py)
- Custom exception classes (base.py)
"""

# Error codes
from sshgate.core.exceptions.error_codes import (
    ErrorCode,
    ErrorCategory,
    get_error_category,
)

# Base exceptions
from sshgate.core.exceptions.base import (
    BaseAppException,
    GeneralException,
    ConfigException,
    TransportException,
    ListenerBindException,
    HandshakeException,
    HostKeyException,
    ChannelException,
    AuthException,
    KeyNotFoundException,
    KeyLookupException,
    KeyStoreException,
    CommandException,
    EmptyCommandException,
    CommandNotFoundException,
    CatTargetException,
    ProcessException,
    CredentialException,
    ProcessStartException,
    ProcessWaitException,
    ProcessTimeoutException,
    SessionLimitExceededException,
)

__all__ = [
    # Error codes
    "ErrorCode",
    "ErrorCategory",
    "get_error_category",
    # Base exceptions
    "BaseAppException",
    "GeneralException",
    "ConfigException",
    "TransportException",
    "ListenerBindException",
    "HandshakeException",
    "HostKeyException",
    "ChannelException",
    "AuthException",
    "KeyNotFoundException",
    "KeyLookupException",
    "KeyStoreException",
    "CommandException",
    "EmptyCommandException",
    "CommandNotFoundException",
    "CatTargetException",
    "ProcessException",
    "CredentialException",
    "ProcessStartException",
    "ProcessWaitException",
    "ProcessTimeoutException",
    "SessionLimitExceededException",
]
