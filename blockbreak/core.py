import logging
import dataclasses
from base64 import b64encode, b64decode
from dataclasses import dataclass
from typing import ClassVar, Optional

from blockbreak.errors import (InvalidInitializationVectorSize, InvalidOffset)
from blockbreak.models import (AesKey, CounterLayout, KeySize, Mode, PaddingScheme)
from blockbreak.utils.encryption import (
    check_iv, crypt_ctr, encrypt_ecb, decrypt_ecb, encrypt_cbc, decrypt_cbc
)
from blockbreak.utils.keygen import (generate_key, generate_iv, random_bytes)
from blockbreak.utils.padding import (pad_pkcs7, unpad_pkcs7)

logger = logging.getLogger(__name__)

# -----------------------------
# Encryption Context
# -----------------------------
@dataclass(frozen=True)
class EncryptionContext:
    """
    Chosen-plaintext encryption oracle.

    encrypt(input) = Mode(Pad(prefix ++ input ++ suffix)). The key, prefix
    and suffix are fixed for the lifetime of the context and are never shown
    to an attack; attacks only ever call ``encrypt``.

    ``iv=None`` means a fresh random IV is drawn on every CBC/CTR call and
    the ciphertext does not include it. Such a context is not deterministic
    and the attacks that compare outputs across calls refuse to run on it.
    """
    key: AesKey
    prefix: bytes = b""
    suffix: bytes = b""
    mode: Mode = Mode.ECB
    padding: PaddingScheme = PaddingScheme.PKCS7
    iv: Optional[bytes] = None
    counter_layout: CounterLayout = CounterLayout.LITTLE_ENDIAN_64

    def __post_init__(self):
        object.__setattr__(self, "key", AesKey.coerce(self.key))
        object.__setattr__(self, "prefix", bytes(self.prefix))
        object.__setattr__(self, "suffix", bytes(self.suffix))
        if self.iv is not None:
            object.__setattr__(self, "iv", check_iv(self.iv))

    @classmethod
    def random(cls, mode: Mode = Mode.ECB, padding: PaddingScheme = PaddingScheme.PKCS7) -> "EncryptionContext":
        """Random key of random size, 5-10 random prefix bytes and 5-10 random suffix bytes."""
        return cls(generate_key(), random_bytes(5, 10), random_bytes(5, 10), mode, padding)

    @classmethod
    def static_content(cls, prefix: bytes, suffix: bytes, mode: Mode = Mode.ECB,
                       padding: PaddingScheme = PaddingScheme.PKCS7) -> "EncryptionContext":
        return cls(generate_key(), prefix, suffix, mode, padding)

    @classmethod
    def random_prefix(cls, suffix: bytes, low: int = 1, high: int = 200) -> "EncryptionContext":
        """ECB/PKCS#7 oracle with a random AES-128 key and a random-length random prefix."""
        return cls(generate_key(KeySize.AES128), random_bytes(low, high), suffix, Mode.ECB, PaddingScheme.PKCS7)

    def with_iv(self, iv: Optional[bytes] = None) -> "EncryptionContext":
        """Copy of this context pinned to ``iv`` (random when omitted), hence deterministic."""
        return dataclasses.replace(self, iv=iv if iv is not None else generate_iv())

    @property
    def block_size(self) -> Optional[int]:
        return self.mode.block_size

    @property
    def deterministic(self) -> bool:
        return self.mode is Mode.ECB or self.iv is not None

    def unpadded_size(self, input_size: int) -> int:
        return len(self.prefix) + input_size + len(self.suffix)

    def padded_size(self, input_size: int) -> int:
        size = self.unpadded_size(input_size)
        if self.block_size is None or self.padding is PaddingScheme.NONE or size == 0:
            return size
        return (size // self.block_size + 1) * self.block_size

    def _pads(self) -> bool:
        return self.block_size is not None and self.padding is PaddingScheme.PKCS7

    def encrypt(self, data: bytes) -> bytes:
        plaintext = self.prefix + bytes(data) + self.suffix
        if self._pads():
            plaintext = pad_pkcs7(plaintext, self.block_size)

        match self.mode:
            case Mode.ECB:
                return encrypt_ecb(plaintext, self.key)
            case Mode.CBC:
                return encrypt_cbc(plaintext, self.key, self.iv or generate_iv())
            case Mode.CTR:
                return crypt_ctr(plaintext, self.key, self.iv or generate_iv(), self.counter_layout)
            case _:
                raise ValueError(f"Unknown mode: {self.mode}")

    __call__ = encrypt

    def decrypt(self, ciphertext: bytes, iv: Optional[bytes] = None) -> bytes:
        """
        Invert ``encrypt``: returns prefix ++ input ++ suffix.

        Ground-truth helper for harnesses; attacks never call it.
        """
        iv = iv if iv is not None else self.iv
        match self.mode:
            case Mode.ECB:
                plaintext = decrypt_ecb(ciphertext, self.key)
            case Mode.CBC:
                if iv is None:
                    raise InvalidInitializationVectorSize(0, "required to decrypt CBC")
                plaintext = decrypt_cbc(ciphertext, self.key, iv)
            case Mode.CTR:
                if iv is None:
                    raise InvalidInitializationVectorSize(0, "required to decrypt CTR")
                plaintext = crypt_ctr(ciphertext, self.key, iv, self.counter_layout)
            case _:
                raise ValueError(f"Unknown mode: {self.mode}")
        if self._pads():
            plaintext = unpad_pkcs7(plaintext, self.block_size)
        return plaintext

    def to_dict(self) -> dict:
        return {
            "key": b64encode(self.key.material).decode(),
            "prefix": b64encode(self.prefix).decode(),
            "suffix": b64encode(self.suffix).decode(),
            "mode": self.mode.value,
            "padding": self.padding.value,
            "iv": b64encode(self.iv).decode() if self.iv is not None else None,
            "counter_layout": self.counter_layout.value,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "EncryptionContext":
        return cls(
            key=AesKey.from_bytes(b64decode(data["key"])),
            prefix=b64decode(data["prefix"]),
            suffix=b64decode(data["suffix"]),
            mode=Mode(data["mode"]),
            padding=PaddingScheme(data["padding"]),
            iv=b64decode(data["iv"]) if data.get("iv") else None,
            counter_layout=CounterLayout(data.get("counter_layout", CounterLayout.LITTLE_ENDIAN_64.value)),
        )

# -----------------------------
# Random Access CTR
# -----------------------------
@dataclass(frozen=True)
class RandomAccessCtrOracle:
    """
    CTR oracle that lets the caller rewrite plaintext at any offset of an
    existing ciphertext without re-encrypting the rest.
    """
    key: AesKey
    nonce: bytes
    layout: CounterLayout = CounterLayout.LITTLE_ENDIAN_64

    deterministic: ClassVar[bool] = True

    def __post_init__(self):
        object.__setattr__(self, "key", AesKey.coerce(self.key))
        object.__setattr__(self, "nonce", check_iv(self.nonce))

    @classmethod
    def random(cls, layout: CounterLayout = CounterLayout.LITTLE_ENDIAN_64) -> "RandomAccessCtrOracle":
        return cls(generate_key(), generate_iv(), layout)

    def encrypt(self, plaintext: bytes) -> bytes:
        return crypt_ctr(plaintext, self.key, self.nonce, self.layout)

    decrypt = encrypt

    def edit(self, ciphertext: bytes, offset: int, new_plaintext: bytes) -> bytes:
        """
        Replace the plaintext under ``ciphertext[offset:offset + len(new_plaintext)]``.

        The keystream for that range is regenerated from the same key and
        nonce and spliced in. An edit that runs past the end grows the
        ciphertext.

        Raises:
            InvalidOffset: If offset is negative or beyond the end of the ciphertext
        """
        edited = bytearray(ciphertext)
        if offset < 0 or offset > len(edited):
            raise InvalidOffset(len(edited), offset)

        tail = crypt_ctr(new_plaintext, self.key, self.nonce, self.layout, offset=offset)
        end = offset + len(tail)
        if end > len(edited):
            edited.extend(bytes(end - len(edited)))
        edited[offset:end] = tail
        logger.debug("edited %d bytes at offset %d of %d-byte ciphertext", len(tail), offset, len(ciphertext))
        return bytes(edited)
