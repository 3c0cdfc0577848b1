# ============================================================================
# WxPay Gateway Client v1.0.0
# Nonce Generator - Anti-Replay Tokens
# ============================================================================
#
# Purpose: Random alphanumeric tokens for the nonce_str / nonceStr fields
#
# Entropy comes from the operating system CSPRNG (secrets module). If the
# OS source fails the exception propagates; there is no weaker fallback.
#
# ============================================================================

import secrets
import string

NONCE_ALPHABET = string.ascii_uppercase + string.ascii_lowercase + string.digits

# Length used for every request envelope
DEFAULT_NONCE_LENGTH = 32


class NonceGenerator:
    """
    Produces random printable tokens for replay resistance.

    Example Usage:
        token = NonceGenerator().generate(32)
    """

    def __init__(self, alphabet: str = NONCE_ALPHABET):
        self.alphabet = alphabet

    def generate(self, length: int = DEFAULT_NONCE_LENGTH) -> str:
        """
        Generate a token of exactly ``length`` characters.

        Args:
            length: Positive token length

        Returns:
            Alphanumeric token

        Raises:
            ValueError: If length is not positive
        """
        if length <= 0:
            raise ValueError(f"Nonce length must be positive, got: {length}")
        return ''.join(secrets.choice(self.alphabet) for _ in range(length))


_default_generator = NonceGenerator()


def generate_nonce(length: int = DEFAULT_NONCE_LENGTH) -> str:
    """Module-level shortcut for NonceGenerator().generate()."""
    return _default_generator.generate(length)


__all__ = [
    "NONCE_ALPHABET",
    "DEFAULT_NONCE_LENGTH",
    "NonceGenerator",
    "generate_nonce",
]
