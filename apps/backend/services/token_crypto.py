"""Encryption of provider credentials at rest (Fernet)."""
import base64
import json
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken as FernetInvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC


def _get_fernet(secret: str) -> Fernet:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=b"personal_assistant_sources",
        iterations=100000,
    )
    key = base64.urlsafe_b64encode(kdf.derive(secret.encode()))
    return Fernet(key)


def encrypt_credentials(data: dict, encryption_key: str) -> str:
    if not data:
        return ""
    f = _get_fernet(encryption_key)
    return f.encrypt(json.dumps(data).encode()).decode()


def decrypt_credentials(cipher: str | None, encryption_key: str) -> Optional[dict]:
    if not cipher:
        return None
    try:
        f = _get_fernet(encryption_key)
        return json.loads(f.decrypt(cipher.encode()).decode())
    except (FernetInvalidToken, ValueError):
        return None


def mask_token(token: Optional[str]) -> str:
    if not token or len(token) < 4:
        return "****"
    return "****" + token[-4:]
