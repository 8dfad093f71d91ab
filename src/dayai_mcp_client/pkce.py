# dayai_mcp_client/pkce.py
"""PKCE (Proof Key for Code Exchange) helpers per RFC 7636.

Only the S256 challenge method is supported.
"""

import base64
import hashlib
import secrets
from dataclasses import dataclass

# Bytes of entropy drawn before encoding
VERIFIER_ENTROPY_BYTES = 32
STATE_ENTROPY_BYTES = 16

CODE_CHALLENGE_METHOD = "S256"


def generate_verifier(num_bytes: int = VERIFIER_ENTROPY_BYTES) -> str:
    """
    Generate a URL-safe code verifier.

    Args:
        num_bytes: Random bytes to draw (at least 32)

    Returns:
        Base64url encoded verifier without padding (43+ characters)
    """
    if num_bytes < VERIFIER_ENTROPY_BYTES:
        raise ValueError(
            f"Code verifier needs at least {VERIFIER_ENTROPY_BYTES} bytes of entropy"
        )
    return secrets.token_urlsafe(num_bytes)


def challenge_from_verifier(verifier: str) -> str:
    """Derive the S256 code challenge for ``verifier``."""
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")


def generate_state(num_bytes: int = STATE_ENTROPY_BYTES) -> str:
    """Generate an opaque CSRF correlation token for one authorization flow."""
    if num_bytes < STATE_ENTROPY_BYTES:
        raise ValueError(f"State needs at least {STATE_ENTROPY_BYTES} bytes of entropy")
    return secrets.token_hex(num_bytes)


@dataclass(frozen=True)
class PKCEPair:
    """Code verifier and its S256 challenge."""

    verifier: str
    challenge: str
    method: str = CODE_CHALLENGE_METHOD

    @classmethod
    def generate(cls) -> "PKCEPair":
        verifier = generate_verifier()
        return cls(verifier=verifier, challenge=challenge_from_verifier(verifier))
