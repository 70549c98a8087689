"""Cryptographic utilities for credential and secret handling."""

from typing import Any, Dict, Optional
from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
import base64
import hashlib
import hmac
import json
import secrets

from integration_engine.core.exceptions import CredentialError


def generate_key(password: str, salt: bytes) -> bytes:
    """Derive a Fernet key from a password and a fixed salt."""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=salt,
        iterations=100000,
    )
    return base64.urlsafe_b64encode(kdf.derive(password.encode()))


class CredentialVault:
    """Symmetric encryption for stored credentials.

    Fernet tokens carry a random IV, so encrypting the same plaintext twice
    never yields the same token. The secret has to come from configuration:
    a key generated at startup would orphan everything encrypted under the
    previous one.
    """

    def __init__(self, secret: str, salt: str = "integration-engine-vault"):
        if not secret:
            raise ValueError("CredentialVault requires an externally supplied encryption key")
        self._fernet = Fernet(generate_key(secret, salt.encode()))

    def encrypt(self, plain: str) -> str:
        """Encrypt a string into an opaque token."""
        return self._fernet.encrypt(plain.encode()).decode()

    def decrypt(self, token: str) -> str:
        """Decrypt an opaque token back into the original string."""
        try:
            return self._fernet.decrypt(token.encode()).decode()
        except (InvalidToken, ValueError) as e:
            raise CredentialError("Stored credentials could not be decrypted") from e

    def encrypt_credentials(self, credentials: Dict[str, Any]) -> str:
        """Encrypt a credentials mapping."""
        return self.encrypt(json.dumps(credentials))

    def decrypt_credentials(self, token: Optional[str]) -> Dict[str, Any]:
        """Decrypt a credentials mapping; an absent token means no credentials."""
        if not token:
            return {}
        try:
            return json.loads(self.decrypt(token))
        except json.JSONDecodeError as e:
            raise CredentialError("Stored credentials are not a JSON object") from e


def generate_webhook_secret() -> str:
    """Generate a secure webhook secret."""
    return secrets.token_hex(32)


def compute_signature(secret: str, body: bytes) -> str:
    """Hex HMAC-SHA256 of a raw request body."""
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def verify_signature(secret: str, body: bytes, signature: Optional[str]) -> bool:
    """Constant-time check of a hex signature, with or without a ``sha256=`` prefix."""
    if not signature:
        return False
    provided = signature.strip()
    if provided.startswith("sha256="):
        provided = provided[len("sha256="):]
    return hmac.compare_digest(compute_signature(secret, body).encode(), provided.encode())
