"""
Exception taxonomy for blockbreak.

Cipher and padding failures subclass ValueError so callers that only care
about "bad input" can catch them broadly. Oracle failures are raised by the
cryptanalysis engine when an assumption about the black box breaks; they
never mean the attack produced a wrong answer, only that it refused to guess.
"""


class BlockBreakError(Exception):
    """Base class for every error raised by blockbreak."""


# -----------------------------
# Cipher Errors
# -----------------------------
class AesError(BlockBreakError, ValueError):
    pass


class InvalidKeySize(AesError):
    def __init__(self, size: int):
        self.size = size
        super().__init__(f"Invalid key size of '{size}' must be 16, 24, or 32")


class InvalidBlockSize(AesError):
    def __init__(self, size: int, block_size: int = 16):
        self.size = size
        self.block_size = block_size
        super().__init__(f"Invalid block size of '{size}' must be divisible by {block_size}")


class InvalidInitializationVectorSize(AesError):
    def __init__(self, was: int, explanation: str = "must be 16 bytes"):
        self.was = was
        self.explanation = explanation
        super().__init__(f"Invalid initialization vector size of '{was}' {explanation}")


class InvalidOffset(AesError):
    def __init__(self, length: int, offset: int):
        self.length = length
        self.offset = offset
        super().__init__(f"Invalid offset of '{offset}' for input length of {length}")


# -----------------------------
# PKCS#7 Errors
# -----------------------------
class Pkcs7Error(BlockBreakError, ValueError):
    pass


class ZeroBlockSize(Pkcs7Error):
    def __init__(self, block_size: int = 0):
        self.block_size = block_size
        super().__init__(f"block_size must be between 1 and 255 (was {block_size})")


class InvalidBlockLength(Pkcs7Error):
    def __init__(self, was: int, expected: int):
        self.was = was
        self.expected = expected
        super().__init__(f"invalid block length '{was}' (expected multiple of '{expected}')")


class InvalidPaddingLength(Pkcs7Error):
    def __init__(self, was: int, offset: int):
        self.was = was
        self.offset = offset
        super().__init__(f"invalid padding length '{was}' at offset {offset}")


class InvalidPaddingByte(Pkcs7Error):
    def __init__(self, offset: int, found: int, expected: int):
        self.offset = offset
        self.found = found
        self.expected = expected
        super().__init__(f"invalid padding byte '{found}' at offset {offset} (expected '{expected}')")


class XorLengthMismatch(BlockBreakError, ValueError):
    def __init__(self, left: int, right: int):
        self.left = left
        self.right = right
        super().__init__(f"fixed xor may only be performed on same-length inputs ({left} != {right})")


# -----------------------------
# Oracle Errors
# -----------------------------
class OracleError(BlockBreakError):
    pass


class BrokenOracle(OracleError):
    """The oracle violated an assumption the attack depends on."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"broken oracle: {reason}")


class UnableToMatchByte(OracleError):
    """
    No candidate byte reproduced the reference block.

    ``recovered`` holds every byte recovered before ``index`` so the caller
    can see exactly where the attack stopped.
    """

    def __init__(self, index: int, recovered: bytes):
        self.index = index
        self.recovered = bytes(recovered)
        super().__init__(f"unable to match byte at index {index} ({len(recovered)} bytes recovered)")


class NonDeterministicOracle(OracleError):
    def __init__(self, oracle):
        self.oracle = oracle
        super().__init__(f"{type(oracle).__name__} draws a fresh IV per call; attack requires a fixed IV")


class InvalidPlaintext(OracleError):
    """Raised by a victim whose decrypted plaintext failed validation; carries the plaintext."""

    def __init__(self, plaintext: bytes):
        self.plaintext = bytes(plaintext)
        super().__init__("invalid plaintext (non-ASCII bytes)")
