# ============================================================================
# WxPay Gateway Client v1.0.0
# Canonical Signer - MD5 Parameter Signature
# ============================================================================
#
# Purpose: Signs outbound envelopes and verifies inbound ones
#
# Signature Format:
#   payload   = k1=v1&k2=v2&...&key=<secret>   (keys ascending, byte order)
#   signature = upper(hex(MD5(utf8(payload))))
#
# Excluded from the payload: the "sign" field itself and empty values.
# Values are concatenated raw; the gateway does not URL-encode them.
#
# ============================================================================

import hashlib
import hmac
import logging
from typing import Mapping, Optional

logger = logging.getLogger(__name__)

# Reserved field carrying the signature on the wire
SIGN_FIELD = "sign"

# Field name prefixed to the secret at the end of the payload
SECRET_SUFFIX_KEY = "key"


class CanonicalSigner:
    """
    Deterministic signing algorithm shared by requests and responses.

    Example Usage:
        signer = CanonicalSigner()
        params["sign"] = signer.sign(params, credential.app_key)
    """

    def __init__(self, sign_field: str = SIGN_FIELD):
        self.sign_field = sign_field

    def canonical_string(self, parameters: Mapping[str, str], secret_key: str) -> str:
        """
        Build the string that is digested.

        Args:
            parameters: Field name to value mapping
            secret_key: Shared merchant API key

        Returns:
            Sorted ``key=value&`` concatenation followed by ``key=<secret>``
        """
        eligible = [
            name for name, value in parameters.items()
            if name != self.sign_field and value != '' and value is not None
        ]
        # Python sorts str by code point, which equals byte order for ASCII keys
        eligible.sort(key=lambda name: name.encode('utf-8'))

        parts = [f"{name}={parameters[name]}&" for name in eligible]
        parts.append(f"{SECRET_SUFFIX_KEY}={secret_key}")
        return ''.join(parts)

    def sign(self, parameters: Mapping[str, str], secret_key: str) -> str:
        """
        Compute the 32-character uppercase hex signature.

        Args:
            parameters: Field name to value mapping
            secret_key: Shared merchant API key

        Returns:
            Uppercase MD5 hex digest of the canonical string
        """
        payload = self.canonical_string(parameters, secret_key)
        return hashlib.md5(payload.encode('utf-8')).hexdigest().upper()

    def verify(
        self,
        parameters: Mapping[str, str],
        secret_key: str,
        signature: Optional[str] = None
    ) -> bool:
        """
        Check a carried signature against a fresh computation.

        Args:
            parameters: Flattened fields (the sign field is ignored if present)
            secret_key: Shared merchant API key
            signature: Carried signature; read from parameters when omitted

        Returns:
            True when both signatures are byte-for-byte equal
        """
        if signature is None:
            signature = parameters.get(self.sign_field, '')
        if not signature:
            logger.debug(
                f"[WXPAY-SIGN] Verification failed | reason=missing_signature | "
                f"fields={len(parameters)}"
            )
            return False
        expected = self.sign(parameters, secret_key)
        matched = hmac.compare_digest(expected.encode('utf-8'), signature.encode('utf-8'))
        if not matched:
            logger.debug(
                f"[WXPAY-SIGN] Verification failed | reason=mismatch | "
                f"fields={len(parameters)} | signature=[REDACTED]"
            )
        return matched


_default_signer = CanonicalSigner()


def make_sign(parameters: Mapping[str, str], secret_key: str) -> str:
    """Module-level shortcut for CanonicalSigner().sign()."""
    return _default_signer.sign(parameters, secret_key)


def verify_sign(
    parameters: Mapping[str, str],
    secret_key: str,
    signature: Optional[str] = None
) -> bool:
    """Module-level shortcut for CanonicalSigner().verify()."""
    return _default_signer.verify(parameters, secret_key, signature)


__all__ = [
    "SIGN_FIELD",
    "SECRET_SUFFIX_KEY",
    "CanonicalSigner",
    "make_sign",
    "verify_sign",
]
