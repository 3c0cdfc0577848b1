"""
============================================================================
WxPay Gateway Client - Credential Configuration
============================================================================

This module provides the merchant credential consumed by every operation:
- Environment variable parsing with type safety
- Default values for optional configuration
- Validation of required configuration
- Mutual-TLS identity paths for the certificate-gated endpoints

ENVIRONMENT VARIABLES:
    - WXPAY_APP_ID: Application id issued by the gateway (required)
    - WXPAY_MCH_ID: Merchant id (required)
    - WXPAY_APP_KEY: Shared signing secret (required)
    - WXPAY_TRADE_TYPE: JSAPI, NATIVE, APP, MWEB or MICROPAY (default: APP)
    - WXPAY_NOTIFY_URL: Default asynchronous notification URL
    - WXPAY_SPBILL_CREATE_IP: Default originating terminal IP
    - WXPAY_CERT_PATH / WXPAY_KEY_PATH / WXPAY_ROOTCA_PATH: Client certificate
    - WXPAY_TIMEOUT_SECONDS: Request deadline in seconds (default: 6)

ERROR CODES:
    - WXPAY-CFG-001: Required configuration missing or invalid

============================================================================
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union
import logging
import os

from wxpay.errors import ConfigurationError, WxPayErrorCode

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Default Values
# =============================================================================

# Default: app payment flow
DEFAULT_TRADE_TYPE = "APP"

# Default: 6 second deadline per request
DEFAULT_TIMEOUT_SECONDS = 6.0

SUPPORTED_TRADE_TYPES = ("JSAPI", "NATIVE", "APP", "MWEB", "MICROPAY")


# =============================================================================
# Mutual TLS Identity
# =============================================================================

@dataclass(frozen=True)
class TlsIdentity:
    """
    Client certificate, private key and optional trusted root bundle.

    Paths are handed to the TLS stack as-is; PEM parsing happens there.
    """

    cert_path: str
    key_path: str
    root_ca_path: Optional[str] = None

    @classmethod
    def from_paths(cls, *paths: str) -> "TlsIdentity":
        """
        Build an identity from paths given in cert, key, rootca order.

        Raises:
            ConfigurationError: Fewer than two paths, or a file does not exist
        """
        if len(paths) < 2:
            raise ConfigurationError(
                "TLS identity needs at least a certificate path and a key path"
            )
        for path in paths[:3]:
            if not os.path.isfile(path):
                raise ConfigurationError(f"TLS identity file not found: {path}")
        root_ca = paths[2] if len(paths) >= 3 else None
        return cls(cert_path=paths[0], key_path=paths[1], root_ca_path=root_ca)

    @property
    def cert(self) -> Tuple[str, str]:
        """The (cert, key) pair in the form requests expects."""
        return (self.cert_path, self.key_path)

    @property
    def verify(self) -> Union[str, bool]:
        """Root bundle path, or True to use the default trust store."""
        return self.root_ca_path or True


# =============================================================================
# WxPayCredential Class
# =============================================================================

@dataclass(frozen=True)
class WxPayCredential:
    """
    Merchant account credential. Immutable; never modified by the client.

    ============================================================================
    CONFIGURATION PARAMETERS:
    ============================================================================
    - app_id: Application id (REQUIRED)
    - mch_id: Merchant id (REQUIRED)
    - app_key: Signing secret (REQUIRED, never logged)
    - trade_type: Operation mode merged into unified order and micropay
    - notify_url: Default notify_url when the caller leaves it blank
    - spbill_create_ip: Default spbill_create_ip when the caller leaves it blank
    - tls_identity: Client certificate for refund and reverse
    - timeout: Whole-call deadline in seconds
    ============================================================================
    """

    app_id: str
    mch_id: str
    app_key: str = field(repr=False)
    trade_type: str = DEFAULT_TRADE_TYPE
    notify_url: str = ''
    spbill_create_ip: str = ''
    tls_identity: Optional[TlsIdentity] = None
    timeout: float = DEFAULT_TIMEOUT_SECONDS

    def validate(self) -> None:
        """
        Validate configuration completeness.

        Raises:
            ConfigurationError: If required configuration is missing
        """
        errors: List[str] = []

        if not self.app_id:
            errors.append("WXPAY_APP_ID must be set")
        if not self.mch_id:
            errors.append("WXPAY_MCH_ID must be set")
        if not self.app_key:
            errors.append("WXPAY_APP_KEY must be set")
        if self.trade_type not in SUPPORTED_TRADE_TYPES:
            errors.append(
                f"WXPAY_TRADE_TYPE must be one of {', '.join(SUPPORTED_TRADE_TYPES)}, "
                f"got: {self.trade_type}"
            )
        if self.timeout <= 0:
            errors.append(f"WXPAY_TIMEOUT_SECONDS must be positive, got: {self.timeout}")

        if errors:
            error_msg = "WxPay configuration validation failed: " + "; ".join(errors)
            logger.error(f"[{WxPayErrorCode.CONFIG_INVALID}] {error_msg}")
            raise ConfigurationError(error_msg)

        logger.info(
            f"[WXPAY-CONFIG] Configuration validated | "
            f"app_id={self.app_id} | mch_id={self.mch_id} | "
            f"trade_type={self.trade_type} | "
            f"tls_identity={self.tls_identity is not None} | "
            f"timeout={self.timeout}"
        )

    @classmethod
    def from_environment(cls, validate: bool = True) -> "WxPayCredential":
        """
        Load the credential from environment variables.

        Args:
            validate: Whether to validate configuration after loading

        Returns:
            WxPayCredential instance

        Raises:
            ConfigurationError: If required configuration is missing
        """
        timeout_str = os.environ.get("WXPAY_TIMEOUT_SECONDS", str(DEFAULT_TIMEOUT_SECONDS))
        try:
            timeout = float(timeout_str.strip())
        except ValueError:
            logger.warning(
                f"[WXPAY-CONFIG] Invalid WXPAY_TIMEOUT_SECONDS value: {timeout_str}, "
                f"using default: {DEFAULT_TIMEOUT_SECONDS}"
            )
            timeout = DEFAULT_TIMEOUT_SECONDS

        config = cls(
            app_id=os.environ.get("WXPAY_APP_ID", "").strip(),
            mch_id=os.environ.get("WXPAY_MCH_ID", "").strip(),
            app_key=os.environ.get("WXPAY_APP_KEY", "").strip(),
            trade_type=os.environ.get("WXPAY_TRADE_TYPE", DEFAULT_TRADE_TYPE).strip().upper(),
            notify_url=os.environ.get("WXPAY_NOTIFY_URL", "").strip(),
            spbill_create_ip=os.environ.get("WXPAY_SPBILL_CREATE_IP", "").strip(),
            tls_identity=cls._tls_identity_from_environment(),
            timeout=timeout,
        )

        logger.info(
            f"[WXPAY-CONFIG] Loading configuration from environment | "
            f"WXPAY_APP_ID={config.app_id} | "
            f"WXPAY_TRADE_TYPE={config.trade_type} | "
            f"WXPAY_APP_KEY=[REDACTED]"
        )

        if validate:
            config.validate()

        return config

    @staticmethod
    def _tls_identity_from_environment() -> Optional[TlsIdentity]:
        """
        Read the client certificate paths by name.

        Any of the three variables being set means mutual TLS is intended,
        so certificate and key must then both be present.

        Raises:
            ConfigurationError: Certificate or key missing, or a file not found
        """
        cert_path = os.environ.get("WXPAY_CERT_PATH", "").strip()
        key_path = os.environ.get("WXPAY_KEY_PATH", "").strip()
        root_ca_path = os.environ.get("WXPAY_ROOTCA_PATH", "").strip()

        if not (cert_path or key_path or root_ca_path):
            return None

        missing = [
            name for name, value in (
                ("WXPAY_CERT_PATH", cert_path),
                ("WXPAY_KEY_PATH", key_path),
            )
            if not value
        ]
        if missing:
            error_msg = (
                f"Mutual TLS configuration incomplete: {', '.join(missing)} must be set "
                f"when any of WXPAY_CERT_PATH, WXPAY_KEY_PATH, WXPAY_ROOTCA_PATH is set"
            )
            logger.error(f"[{WxPayErrorCode.CONFIG_INVALID}] {error_msg}")
            raise ConfigurationError(error_msg)

        for name, path in (
            ("WXPAY_CERT_PATH", cert_path),
            ("WXPAY_KEY_PATH", key_path),
            ("WXPAY_ROOTCA_PATH", root_ca_path),
        ):
            if path and not os.path.isfile(path):
                raise ConfigurationError(f"{name} file not found: {path}")

        return TlsIdentity(
            cert_path=cert_path,
            key_path=key_path,
            root_ca_path=root_ca_path or None,
        )

    def get_redacted_key(self) -> str:
        """
        Get redacted signing key for logging purposes.

        Returns first 4 and last 4 characters only.
        """
        if len(self.app_key) > 8:
            return f"{self.app_key[:4]}...{self.app_key[-4:]}"
        return "[REDACTED]"

    def to_dict(self) -> Dict[str, Any]:
        """Configuration as a dictionary, secret redacted."""
        return {
            "app_id": self.app_id,
            "mch_id": self.mch_id,
            "app_key": self.get_redacted_key(),
            "trade_type": self.trade_type,
            "notify_url": self.notify_url,
            "spbill_create_ip": self.spbill_create_ip,
            "tls_identity": self.tls_identity is not None,
            "timeout": self.timeout,
        }


__all__ = [
    "DEFAULT_TRADE_TYPE",
    "DEFAULT_TIMEOUT_SECONDS",
    "SUPPORTED_TRADE_TYPES",
    "TlsIdentity",
    "WxPayCredential",
]
