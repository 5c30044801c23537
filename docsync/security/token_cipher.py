import os
import string

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from docsync.exceptions import ConfigurationError, DecryptionError

IV_LENGTH = 16
TAG_LENGTH = 16
KEY_HEX_LENGTH = 64


class TokenCipher:
    """AES-256-GCM encryption for OAuth tokens stored at rest.

    Wire format is ``iv:authTag:ciphertext``, each segment lowercase hex.
    """

    def __init__(self, key_hex: str) -> None:
        if len(key_hex) != KEY_HEX_LENGTH:
            raise ConfigurationError(
                f"Token encryption key must be exactly {KEY_HEX_LENGTH} hex characters "
                f"(32 bytes), got {len(key_hex)}"
            )
        if any(ch not in string.hexdigits for ch in key_hex):
            raise ConfigurationError(
                "Token encryption key must contain only hexadecimal characters"
            )
        self._aesgcm = AESGCM(bytes.fromhex(key_hex))

    def encrypt(self, plaintext: str) -> str:
        iv = os.urandom(IV_LENGTH)
        sealed = self._aesgcm.encrypt(iv, plaintext.encode("utf-8"), None)
        ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
        return f"{iv.hex()}:{tag.hex()}:{ciphertext.hex()}"

    def decrypt(self, token: str) -> str:
        """Decrypt a stored token.

        Raises:
            DecryptionError: if the value is malformed or fails authentication.
        """
        parts = token.split(":")
        if len(parts) != 3:
            raise DecryptionError("Invalid encrypted token format")
        iv_hex, tag_hex, ciphertext_hex = parts
        try:
            iv = bytes.fromhex(iv_hex)
            tag = bytes.fromhex(tag_hex)
            ciphertext = bytes.fromhex(ciphertext_hex)
        except ValueError as exc:
            raise DecryptionError("Encrypted token is not valid hex") from exc
        if len(iv) != IV_LENGTH or len(tag) != TAG_LENGTH:
            raise DecryptionError("Encrypted token has wrong IV or tag length")
        try:
            plaintext = self._aesgcm.decrypt(iv, ciphertext + tag, None)
        except InvalidTag as exc:
            raise DecryptionError("Encrypted token failed authentication") from exc
        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecryptionError("Decrypted token is not valid UTF-8") from exc
