"""
Encrypted storage for the backend bearer token.

Token files are Fernet tokens. Password-protected files carry a b'SALT'
prefix followed by the 16-byte PBKDF2 salt; key-file protected files are
the bare Fernet token.
"""

import base64
import os
from pathlib import Path
from typing import Optional, Union

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC


SALT_PREFIX = b'SALT'
SALT_LENGTH = 16


def derive_key_from_password(password: str, salt: bytes) -> bytes:
    """Derive a Fernet key from a password using PBKDF2."""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=salt,
        iterations=480000,  # OWASP recommendation for 2024
    )
    key_material = kdf.derive(password.encode('utf-8'))
    return base64.urlsafe_b64encode(key_material)


def encrypt_token(token: str, password: Optional[str] = None, key: Optional[bytes] = None) -> bytes:
    """Encrypt a token with either a password or a Fernet key."""
    if (password is None) == (key is None):
        raise ValueError("Specify exactly one of password or key")

    if password is not None:
        salt = os.urandom(SALT_LENGTH)
        fernet = Fernet(derive_key_from_password(password, salt))
        return SALT_PREFIX + salt + fernet.encrypt(token.encode('utf-8'))

    return Fernet(key).encrypt(token.encode('utf-8'))


def decrypt_token(data: bytes, password: Optional[str] = None, key: Optional[bytes] = None) -> str:
    """
    Decrypt a token produced by encrypt_token.

    Raises:
        ValueError: If the wrong secret kind is given or decryption fails
    """
    if data.startswith(SALT_PREFIX):
        if password is None:
            raise ValueError("This token was encrypted with a password.")
        salt = data[len(SALT_PREFIX):len(SALT_PREFIX) + SALT_LENGTH]
        encrypted = data[len(SALT_PREFIX) + SALT_LENGTH:]
        secret = derive_key_from_password(password, salt)
    else:
        if key is None:
            raise ValueError("This token was encrypted with a key file.")
        secret = key
        encrypted = data

    try:
        return Fernet(secret).decrypt(encrypted).decode('utf-8')
    except InvalidToken as e:
        raise ValueError("Decryption failed: invalid key/password or corrupted file") from e


def save_token(path: Union[str, Path], token: str, password: Optional[str] = None, key: Optional[bytes] = None) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(encrypt_token(token, password=password, key=key))
    return path


def load_token(path: Union[str, Path], password: Optional[str] = None, key: Optional[bytes] = None) -> str:
    return decrypt_token(Path(path).read_bytes(), password=password, key=key)
