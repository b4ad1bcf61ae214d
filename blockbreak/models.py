from dataclasses import dataclass, field
from enum import Enum
from typing import Optional
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from blockbreak.errors import InvalidKeySize

# -----------------------------
# CLI Colors
# -----------------------------
class bcolors:
    HEADER = '\033[95m'
    OKBLUE = '\033[94m'
    OKCYAN = '\033[96m'
    OKGREEN = '\033[92m'
    GREY = '\033[90m'
    WARNING = '\033[93m'
    FAIL = '\033[91m'
    ENDC = '\033[0m'
    BOLD = '\033[1m'
    UNDERLINE = '\033[4m'

# -----------------------------
# Enumerations
# -----------------------------
class Mode(Enum):
    ECB = "ecb"
    CBC = "cbc"
    CTR = "ctr"

    @property
    def block_size(self) -> Optional[int]:
        # CTR is a stream construction: no padding, no alignment.
        return None if self is Mode.CTR else 16


class CounterLayout(Enum):
    """
    How a CTR counter block is advanced between keystream blocks.

    NIST_SP800_38A: the whole 16-byte block is one big-endian integer.
    LITTLE_ENDIAN_64: bytes 0..8 are a fixed nonce, bytes 8..16 a
    little-endian 64-bit counter; overflow wraps inside the counter half.
    """
    NIST_SP800_38A = "nist"
    LITTLE_ENDIAN_64 = "le64"


class PaddingScheme(Enum):
    NONE = "none"
    PKCS7 = "pkcs7"


class KeySize(Enum):
    AES128 = 16
    AES192 = 24
    AES256 = 32

# -----------------------------
# AES Key
# -----------------------------
@dataclass(frozen=True)
class AesKey:
    """
    AES key tagged with its size.

    The cipher handle is built once per key and plays the role of the
    expanded key schedule; modes pull fresh encryptor/decryptor contexts
    from it.
    """
    size: KeySize
    material: bytes
    cipher: Cipher = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        if len(self.material) != self.size.value:
            raise InvalidKeySize(len(self.material))
        object.__setattr__(self, "cipher", Cipher(algorithms.AES(bytes(self.material)), modes.ECB()))

    @classmethod
    def from_bytes(cls, key: bytes) -> "AesKey":
        try:
            size = KeySize(len(key))
        except ValueError:
            raise InvalidKeySize(len(key)) from None
        return cls(size, bytes(key))

    @classmethod
    def coerce(cls, key) -> "AesKey":
        if isinstance(key, AesKey):
            return key
        return cls.from_bytes(key)

    def __len__(self) -> int:
        return self.size.value

    def __bytes__(self) -> bytes:
        return self.material

# -----------------------------
# Attack Parameters
# -----------------------------
@dataclass
class AttackParams:
    """
    Tunables for the cryptanalysis engine.

    The probe bytes must differ from each other; the filler byte should be a
    printable character so it survives victims that validate text.
    """
    probe_byte: int = 0x00          # Byte used to grow inputs when measuring lengths
    alt_probe_byte: int = 0x01      # Second probe, used to find where outputs diverge
    filler_byte: int = ord("x")     # Known plaintext for alignment and bit-flipping
    max_block_size: int = 255       # Largest block size PKCS#7 can describe
    max_probe_length: int = 512     # Bound on input growth while detecting block size
    max_key_recovery_attempts: int = 256


@dataclass
class OracleProfile:
    """Everything learnt about an oracle before decrypting its suffix."""
    block_size: int
    uses_ecb: bool
    uses_padding: bool
    prefix_size: int
    suffix_size: int

    @property
    def prefix_blocks(self) -> int:
        return -(-self.prefix_size // self.block_size)
