# reviewdesk/crypto.py
"""
Encryption at rest for credential columns.

DB_ENCRYPTION_KEY is stretched with PBKDF2 into a Fernet key; EncryptedText
encrypts on the way into the database and decrypts on the way out, so the
DAOs and the token manager only ever see plaintext.
"""
import base64
from functools import lru_cache
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from sqlalchemy import Text
from sqlalchemy.types import TypeDecorator

from reviewdesk.config import settings
from reviewdesk.errors import DatabaseError

# Fixed salt: the key must derive identically on every process and restart
_KDF_SALT = b"reviewdesk.oauth_tokens.v1"
_KDF_ITERATIONS = 200_000


def derive_fernet_key(passphrase: str) -> bytes:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=_KDF_SALT,
        iterations=_KDF_ITERATIONS,
    )
    return base64.urlsafe_b64encode(kdf.derive(passphrase.encode()))


@lru_cache(maxsize=1)
def get_cipher() -> Fernet:
    return Fernet(derive_fernet_key(settings.DB_ENCRYPTION_KEY))


def encrypt(plaintext: str) -> str:
    return get_cipher().encrypt(plaintext.encode()).decode()


def decrypt(ciphertext: str) -> str:
    try:
        return get_cipher().decrypt(ciphertext.encode()).decode()
    except InvalidToken as e:
        raise DatabaseError("Stored credential could not be decrypted (wrong DB_ENCRYPTION_KEY?)") from e


class EncryptedText(TypeDecorator):
    """Text column holding a Fernet token; NULL stays NULL."""
    impl = Text
    cache_ok = True

    def process_bind_param(self, value: Optional[str], dialect) -> Optional[str]:
        if value is None:
            return None
        return encrypt(value)

    def process_result_value(self, value: Optional[str], dialect) -> Optional[str]:
        if value is None:
            return None
        return decrypt(value)
