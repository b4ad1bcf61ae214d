from blockbreak.errors import (
    ZeroBlockSize, InvalidBlockLength, InvalidPaddingLength, InvalidPaddingByte
)

# -----------------------------
# PKCS#7 Padding
# -----------------------------
def _check_block_size(block_size: int):
    if not 1 <= block_size <= 255:
        raise ZeroBlockSize(block_size)

def pad_pkcs7(data: bytes, block_size: int) -> bytes:
    """
    PKCS#7 padding scheme for block cipher input.

    Appends n bytes of value n, where n = block_size - (len(data) mod block_size).
    Aligned input receives a full extra block so the padding is always
    removable without ambiguity.

    Empty input is returned unchanged. This mirrors the oracles in this
    package, which encrypt nothing to nothing.

    Args:
        data: Input data to pad
        block_size: Target block size in bytes, 1..255

    Returns:
        Padded data aligned to block boundary

    Raises:
        ZeroBlockSize: If block_size is outside 1..255
    """
    _check_block_size(block_size)
    if not data:
        return b""
    padlen = block_size - (len(data) % block_size)
    return bytes(data) + bytes([padlen]) * padlen

def unpad_pkcs7(padded: bytes, block_size: int) -> bytes:
    """
    Remove and validate PKCS#7 padding.

    Length errors and byte errors are reported as different exception types;
    callers that leak which one happened are exactly what padding oracle
    attacks feed on.

    Raises:
        ZeroBlockSize: block_size outside 1..255
        InvalidBlockLength: input is not a multiple of block_size
        InvalidPaddingLength: final byte is 0, larger than block_size or the input
        InvalidPaddingByte: one of the trailing bytes disagrees with the final byte
    """
    _check_block_size(block_size)
    if not padded:
        return b""
    if len(padded) % block_size != 0:
        raise InvalidBlockLength(len(padded), block_size)

    padlen = padded[-1]
    if padlen < 1 or padlen > block_size or padlen > len(padded):
        raise InvalidPaddingLength(padlen, len(padded) - 1)

    start = len(padded) - padlen
    for offset in range(start, len(padded)):
        if padded[offset] != padlen:
            raise InvalidPaddingByte(offset, padded[offset], padlen)
    return bytes(padded[:start])
