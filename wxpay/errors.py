# ============================================================================
# WxPay Gateway Client v1.0.0
# Error Taxonomy
# ============================================================================
#
# Purpose: Coded exceptions raised by every layer of the client
#
# Error Codes:
#   - WXPAY-CFG-001: Credential configuration missing or invalid
#   - WXPAY-VAL-001: Required caller field missing (no network call made)
#   - WXPAY-NET-001: Transport failure (DNS, connect, TLS, timeout, non-2xx)
#   - WXPAY-XML-001: Response envelope malformed or missing mandatory fields
#   - WXPAY-GW-001:  Gateway reported return_code other than SUCCESS
#   - WXPAY-SIG-001: Response signature does not verify
#
# ============================================================================

from enum import IntEnum
from typing import Any, Optional


class WxPayErrorCode:
    """Error codes for audit logging."""
    CONFIG_INVALID = "WXPAY-CFG-001"
    VALIDATION_FAILED = "WXPAY-VAL-001"
    TRANSPORT_FAILED = "WXPAY-NET-001"
    PARSE_FAILED = "WXPAY-XML-001"
    GATEWAY_REJECTED = "WXPAY-GW-001"
    SIGNATURE_MISMATCH = "WXPAY-SIG-001"


class Severity(IntEnum):
    """Ordered failure severities; values match the logging levels."""
    WARNING = 30
    ERROR = 40
    CRITICAL = 50


class WxPayError(Exception):
    """
    Base exception for the WxPay client.

    Carries a coded message in the form ``[CODE] message``.
    """

    error_code = "WXPAY-000"
    severity = Severity.ERROR

    def __init__(self, message: str, error_code: Optional[str] = None):
        if error_code is not None:
            self.error_code = error_code
        self.message = message
        super().__init__(f"[{self.error_code}] {message}")


class ConfigurationError(WxPayError):
    """Raised when the credential is missing required values."""
    error_code = WxPayErrorCode.CONFIG_INVALID


class ValidationError(WxPayError):
    """Raised before any network call when a required caller field is absent."""

    error_code = WxPayErrorCode.VALIDATION_FAILED

    def __init__(self, message: str, field: str):
        self.field = field
        super().__init__(message)


class TransportError(WxPayError):
    """Raised when the HTTPS exchange with the gateway fails."""

    error_code = WxPayErrorCode.TRANSPORT_FAILED

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        status_code: Optional[int] = None
    ):
        self.url = url
        self.status_code = status_code
        super().__init__(message)


class ParseError(WxPayError):
    """Raised when response bytes are not a usable envelope."""
    error_code = WxPayErrorCode.PARSE_FAILED


class GatewayError(WxPayError):
    """
    Raised when a well-formed response reports a non-SUCCESS return_code.

    This is a normal business rejection; ``return_msg`` is the gateway's text.
    """

    error_code = WxPayErrorCode.GATEWAY_REJECTED
    severity = Severity.WARNING

    def __init__(self, return_msg: str, record: Any = None):
        self.return_msg = return_msg
        self.record = record
        super().__init__(return_msg)


class SignatureError(WxPayError):
    """
    Raised when a response claims success but its signature does not verify.

    Indicates tampering or a secret mismatch. The attached record is
    untrusted and must not be used as a successful result.
    """

    error_code = WxPayErrorCode.SIGNATURE_MISMATCH
    severity = Severity.CRITICAL

    def __init__(self, message: str = "sign err", record: Any = None):
        self.record = record
        super().__init__(message)


__all__ = [
    "WxPayErrorCode",
    "Severity",
    "WxPayError",
    "ConfigurationError",
    "ValidationError",
    "TransportError",
    "ParseError",
    "GatewayError",
    "SignatureError",
]
