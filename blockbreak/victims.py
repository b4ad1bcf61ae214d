"""
Victim services that wrap an EncryptionContext behind an application-shaped
interface: cookie strings, user profiles and URLs. Each one makes a mistake
that one of the attacks in blockbreak.cryptanalysis exploits.
"""
import logging
import string
from typing import Optional
from urllib.parse import parse_qsl, quote_from_bytes

from blockbreak.core import EncryptionContext
from blockbreak.errors import InvalidPlaintext
from blockbreak.models import (AesKey, KeySize, Mode, PaddingScheme)
from blockbreak.utils.encryption import decrypt_cbc
from blockbreak.utils.keygen import (generate_key, generate_iv, coin_flip)
from blockbreak.utils.padding import unpad_pkcs7

logger = logging.getLogger(__name__)

COOKIE_PREFIX = b"comment1=cooking%20MCs;userdata="
COOKIE_SUFFIX = b";comment2=%20like%20a%20pound%20of%20bacon"
VALID_COOKIE_CHARS = frozenset((string.ascii_letters + string.digits + "=;%!()*+-._~").encode())
UNRESERVED_CHARS = frozenset((string.ascii_letters + string.digits + "-._~").encode())

PROFILE_PREFIX = b"email="
PROFILE_SUFFIX = b"&uid=10&role=user"

# -----------------------------
# Cookie Strings
# -----------------------------
def quote_userdata(userdata: bytes) -> bytes:
    """Percent-encode everything outside the unreserved set, ';' and '=' included."""
    return quote_from_bytes(bytes(userdata), safe="").encode("ascii")

def decode_cookiestring(cookie: str) -> list:
    """Split ``k1=v1;k2=v2`` into ordered (key, value) pairs, percent-decoding both."""
    return parse_qsl(cookie.replace(";", "&"), keep_blank_values=True)


class CookieOracle:
    """
    Encrypts user-supplied data inside a cookie string.

    CBC mode uses PKCS#7 and a fixed random IV; CTR mode uses no padding and
    a fixed random nonce. Both are deterministic, both are malleable.
    """

    def __init__(self, mode: Mode = Mode.CBC, key: Optional[AesKey] = None, iv: Optional[bytes] = None):
        if mode is Mode.ECB:
            raise ValueError("CookieOracle supports CBC and CTR only")
        padding = PaddingScheme.PKCS7 if mode is Mode.CBC else PaddingScheme.NONE
        self._context = EncryptionContext(
            key=key or generate_key(KeySize.AES128),
            prefix=COOKIE_PREFIX,
            suffix=COOKIE_SUFFIX,
            mode=mode,
            padding=padding,
            iv=iv or generate_iv(),
        )

    @property
    def mode(self) -> Mode:
        return self._context.mode

    @property
    def deterministic(self) -> bool:
        return self._context.deterministic

    def encrypt(self, userdata: bytes) -> bytes:
        return self._context.encrypt(quote_userdata(userdata))

    def decrypt_cookies(self, ciphertext: bytes) -> list:
        plaintext = self._context.decrypt(ciphertext)
        cookie = bytes(c for c in plaintext if c in VALID_COOKIE_CHARS).decode("ascii")
        return decode_cookiestring(cookie)

    def is_admin(self, ciphertext: bytes) -> bool:
        return ("admin", "true") in self.decrypt_cookies(ciphertext)

# -----------------------------
# User Profiles
# -----------------------------
def sanitize_email(email: bytes) -> bytes:
    """Strip the profile metacharacters '&' and '='."""
    return bytes(email).replace(b"&", b"").replace(b"=", b"")

def profile_for(email: bytes) -> bytes:
    """Encode a user profile from a sanitized email."""
    return PROFILE_PREFIX + sanitize_email(email) + PROFILE_SUFFIX


class ProfileOracle:
    """ECB-encrypted ``email=...&uid=10&role=user`` profiles under a fixed key."""

    deterministic = True

    def __init__(self, key: Optional[AesKey] = None):
        self._context = EncryptionContext(
            key=key or generate_key(KeySize.AES128),
            prefix=PROFILE_PREFIX,
            suffix=PROFILE_SUFFIX,
            mode=Mode.ECB,
            padding=PaddingScheme.PKCS7,
        )

    def encrypt(self, email: bytes) -> bytes:
        return self._context.encrypt(sanitize_email(email))

    def decrypt_to_profile(self, ciphertext: bytes) -> dict:
        encoded = self._context.decrypt(ciphertext).decode("latin-1")
        return dict(parse_qsl(encoded, keep_blank_values=True))

# -----------------------------
# Key Reused As IV
# -----------------------------
class KeyAsIvOracle:
    """
    CBC service that uses its AES-128 key as the IV.

    ``decrypt`` rejects plaintext containing high-ASCII bytes and, to be
    helpful, puts the offending plaintext in the error.
    """

    deterministic = True

    def __init__(self, key: Optional[bytes] = None):
        self._key = bytes(key) if key is not None else generate_key(KeySize.AES128).material
        self._context = EncryptionContext(
            key=AesKey.from_bytes(self._key),
            mode=Mode.CBC,
            padding=PaddingScheme.PKCS7,
            iv=self._key,
        )

    def encrypt(self, text: bytes) -> bytes:
        if any(c >= 0x80 for c in text):
            raise ValueError("input must be 7-bit ASCII")
        return self._context.encrypt(text)

    def decrypt(self, ciphertext: bytes) -> bytes:
        return self.verify_decrypt(self._key, ciphertext)

    @staticmethod
    def verify_decrypt(key: bytes, ciphertext: bytes) -> bytes:
        """
        Decrypt with IV = key and validate the result.

        Raises:
            InvalidPlaintext: Decrypted bytes include non-ASCII; carries the plaintext
            Pkcs7Error: Padding is malformed
        """
        padded = decrypt_cbc(ciphertext, key, key)
        if any(c >= 0x80 for c in padded):
            logger.debug("rejecting %d-byte plaintext with high-ASCII bytes", len(padded))
            raise InvalidPlaintext(padded)
        return unpad_pkcs7(padded, 16)

# -----------------------------
# Random Mode
# -----------------------------
class RandomModeOracle:
    """Coin-flips ECB or CBC (random IV per call) over a random context."""

    def __init__(self):
        self._context = EncryptionContext.random(Mode.ECB if coin_flip() else Mode.CBC)

    @property
    def mode(self) -> Mode:
        return self._context.mode

    @property
    def deterministic(self) -> bool:
        return self._context.deterministic

    def encrypt(self, data: bytes) -> bytes:
        return self._context.encrypt(data)
