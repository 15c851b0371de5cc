"""Error code system

Error code structure (5 digits):
- 1st digit: Category (1=General, 2=Transport, 3=Auth, 4=Command, 5=Process)
- 2nd-3rd digits: Sub-category
- 4th-5th digits: Specific error

Example: 20101 = Transport(2) Handshake(01) Terminated(01)
"""

from enum import Enum
from typing import Dict


class ErrorCategory(str, Enum):
    """Error categories"""
    GENERAL = "1"
    TRANSPORT = "2"
    AUTH = "3"
    COMMAND = "4"
    PROCESS = "5"


class ErrorCode(Enum):
    """Error code definitions. Each code is (code, message) tuple."""

    # 1XXX: General Errors
    CONFIG_ERROR = (10001, "Configuration error")

    # 2XXX: Transport Errors
    LISTENER_BIND_FAILED = (20000, "Failed to start SSH listener")
    ACCEPT_FAILED = (20001, "Failed to accept incoming connection")

    HANDSHAKE_FAILED = (20100, "SSH handshake failed")
    HANDSHAKE_TERMINATED = (20101, "SSH handshake was terminated")
    HANDSHAKE_TIMEOUT = (20102, "SSH handshake timeout")

    HOST_KEY_GENERATE_FAILED = (20200, "Failed to generate host key")
    HOST_KEY_LOAD_FAILED = (20201, "Failed to load host key")

    CHANNEL_ERROR = (20300, "SSH channel error")

    # 3XXX: Auth Errors
    KEY_NOT_FOUND = (30000, "Public key not found")
    KEY_LOOKUP_FAILED = (30001, "Public key lookup failed")
    KEY_LOOKUP_TIMEOUT = (30002, "Public key lookup timeout")
    KEY_INVALID = (30003, "Invalid public key")
    KEY_ALREADY_EXISTS = (30004, "Public key already exists")
    KEY_STORE_ERROR = (30005, "Public key store error")

    # 4XXX: Command Errors
    COMMAND_EMPTY = (40000, "Empty command")
    COMMAND_NOT_FOUND = (40001, "Executable not found")
    CAT_TARGET_FAILED = (40003, "Failed to open cat target")

    # 5XXX: Process Errors
    PROCESS_CREDENTIAL_FAILED = (50000, "Failed to resolve process credentials")
    PROCESS_START_FAILED = (50001, "Failed to start process")
    PROCESS_WAIT_FAILED = (50002, "Failed to wait for process")
    PROCESS_TIMEOUT = (50003, "Process deadline exceeded")
    SESSION_LIMIT_EXCEEDED = (50004, "Too many concurrent sessions")

    @property
    def code(self) -> int:
        """Return error code"""
        return self.value[0]

    @property
    def message(self) -> str:
        """Return error message"""
        return self.value[1]

    def to_dict(self, detail: str = None) -> Dict:
        """Convert to dictionary for logging"""
        result = {
            "error_code": self.code,
            "message": self.message,
        }
        if detail:
            result["detail"] = detail
        return result


ERROR_CATEGORY_MAP = {
    ErrorCategory.GENERAL: range(10000, 20000),
    ErrorCategory.TRANSPORT: range(20000, 30000),
    ErrorCategory.AUTH: range(30000, 40000),
    ErrorCategory.COMMAND: range(40000, 50000),
    ErrorCategory.PROCESS: range(50000, 60000),
}


def get_error_category(error_code: int) -> ErrorCategory:
    """Get category from error code"""
    for category, code_range in ERROR_CATEGORY_MAP.items():
        if error_code in code_range:
            return category
    return ErrorCategory.GENERAL
