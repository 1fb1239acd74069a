"""Ed25519 verification of Discord interaction requests."""

from __future__ import annotations

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey

from starbase.log import get_logger

logger = get_logger(__name__)


class SignatureVerifier:
    """Checks ``X-Signature-Ed25519`` over ``timestamp + body``."""

    def __init__(self, public_key_hex: str):
        self._key: Ed25519PublicKey | None = None
        if public_key_hex:
            try:
                self._key = Ed25519PublicKey.from_public_bytes(bytes.fromhex(public_key_hex))
            except ValueError:
                logger.error("discord_public_key_invalid")

    def verify(self, body: bytes, signature: str, timestamp: str) -> bool:
        if self._key is None or not signature or not timestamp:
            return False
        try:
            self._key.verify(bytes.fromhex(signature), timestamp.encode() + body)
        except (InvalidSignature, ValueError):
            return False
        return True
