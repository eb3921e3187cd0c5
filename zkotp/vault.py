"""
Secret vault: encrypted at-rest storage of authenticator secrets.

Each account secret is encrypted with AES-256-GCM under a key derived from
the server master password with PBKDF2-HMAC-SHA256, salted with the account
id. The stored blob is "<iv b64>:<ciphertext b64>:<tag b64>".
"""

import base64
import binascii
import logging
import secrets
from hashlib import pbkdf2_hmac
from typing import Tuple

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .errors import AlreadyExists, DecryptionError, ValidationError
from .keys import MasterKeyProvider
from .store import AccountRecord, AccountStore, retry_transient

logger = logging.getLogger(__name__)

PBKDF2_ITERATIONS = 100_000
KEY_SIZE = 32
IV_SIZE = 12
TAG_SIZE = 16


def derive_key(master_password: bytes, account_id: str, iterations: int = PBKDF2_ITERATIONS) -> bytes:
    """Derive the per-account AES key."""
    return pbkdf2_hmac("sha256", master_password, account_id.encode("utf-8"), iterations, dklen=KEY_SIZE)


def encrypt_secret(secret: str, key: bytes) -> str:
    """Encrypt a secret string with a fresh random IV and return the blob."""
    iv = secrets.token_bytes(IV_SIZE)
    sealed = AESGCM(key).encrypt(iv, secret.encode("utf-8"), None)
    ciphertext, tag = sealed[:-TAG_SIZE], sealed[-TAG_SIZE:]
    return ":".join(base64.b64encode(part).decode("ascii") for part in (iv, ciphertext, tag))


def _split_blob(blob: str) -> Tuple[bytes, bytes, bytes]:
    parts = blob.split(":")
    if len(parts) != 3:
        raise DecryptionError("Malformed secret blob")
    try:
        iv, ciphertext, tag = (base64.b64decode(p, validate=True) for p in parts)
    except (binascii.Error, ValueError) as e:
        raise DecryptionError(f"Malformed secret blob: {e}") from e
    if len(iv) != IV_SIZE or len(tag) != TAG_SIZE:
        raise DecryptionError("Malformed secret blob")
    return iv, ciphertext, tag


def decrypt_secret(blob: str, key: bytes) -> str:
    """
    Decrypt a secret blob.

    Raises:
        DecryptionError: On a malformed blob, failed authentication or a
            plaintext that is not UTF-8
    """
    iv, ciphertext, tag = _split_blob(blob)
    try:
        plaintext = AESGCM(key).decrypt(iv, ciphertext + tag, None)
    except InvalidTag as e:
        raise DecryptionError("Decryption failed: invalid key or corrupted data") from e
    try:
        return plaintext.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecryptionError("Decrypted secret is not valid UTF-8") from e


class SecretVault:
    """
    Encrypted per-account secret storage over an injected AccountStore.

    Transient store failures are retried with backoff. Decryption failures
    are never retried and always propagate.
    """

    def __init__(
        self,
        store: AccountStore,
        key_provider: MasterKeyProvider,
        iterations: int = PBKDF2_ITERATIONS,
        retry_attempts: int = 3
    ):
        self.store = store
        self.key_provider = key_provider
        self.iterations = iterations
        self.retry_attempts = retry_attempts

    def _key_for(self, account_id: str) -> bytes:
        return derive_key(self.key_provider.get_master_password(), account_id, self.iterations)

    def register(self, account_id: str, raw_secret: str) -> None:
        """
        Encrypt and persist a secret for a new account.

        Raises:
            ValidationError: If the id or secret is empty
            AlreadyExists: If the id is already registered
        """
        if not isinstance(account_id, str) or not account_id:
            raise ValidationError("uid", "must be a non-empty string")
        if not isinstance(raw_secret, str) or not raw_secret:
            raise ValidationError("secret", "must be a non-empty string")

        blob = encrypt_secret(raw_secret, self._key_for(account_id))
        record = AccountRecord(account_id, blob)
        created = retry_transient(lambda: self.store.put(record), attempts=self.retry_attempts)
        if not created:
            raise AlreadyExists(account_id)
        logger.info("Registered account %s", account_id)

    def reveal(self, account_id: str) -> str:
        """
        Return the plaintext secret of an account.

        Raises:
            NotFound: If the account does not exist
            DecryptionError: If the blob is corrupt or the master key is wrong
        """
        record = retry_transient(lambda: self.store.get(account_id), attempts=self.retry_attempts)
        return decrypt_secret(record.encrypted_secret, self._key_for(account_id))

    def is_registered(self, account_id: str) -> bool:
        return retry_transient(lambda: self.store.exists(account_id), attempts=self.retry_attempts)
