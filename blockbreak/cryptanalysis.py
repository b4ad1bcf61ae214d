"""
Chosen-plaintext attacks against black-box encryption oracles.

Every function here receives an object with an ``encrypt(bytes) -> bytes``
method (plus ``edit`` or ``decrypt`` where noted) and learns what it can by
watching output lengths and comparing output blocks. Nothing here ever sees
a key, a prefix or a suffix directly.

Attacks that compare outputs across calls assume the oracle is
deterministic and refuse to run on one that says otherwise.
"""
import logging
from typing import Optional

from blockbreak.errors import (
    BrokenOracle, InvalidBlockSize, InvalidOffset, InvalidPlaintext,
    NonDeterministicOracle, Pkcs7Error, UnableToMatchByte
)
from blockbreak.models import (AttackParams, OracleProfile)
from blockbreak.utils.encryption import (fixed_xor, fixed_xor_mut, split_blocks)
from blockbreak.utils.padding import pad_pkcs7

logger = logging.getLogger(__name__)

# -----------------------------
# Helpers
# -----------------------------
def _encrypt(oracle, data: bytes) -> bytes:
    return bytes(oracle.encrypt(bytes(data)))

def _check_block_size(block_size: int):
    if not 1 <= block_size <= 255:
        raise BrokenOracle(f"block size {block_size} outside 1..255")

def _ceil_div(a: int, b: int) -> int:
    return -(-a // b)

def require_deterministic(oracle):
    """Reject oracles that advertise ``deterministic = False``."""
    if getattr(oracle, "deterministic", True) is False:
        raise NonDeterministicOracle(oracle)

# -----------------------------
# Detection
# -----------------------------
def detect_block_size(oracle, probe_byte: int = 0x00, max_probe_length: int = 512) -> int:
    """
    Grow the input one byte at a time until the output length jumps.

    The size of the jump is the block size. Stream constructions jump by one
    on the first byte.

    Raises:
        BrokenOracle: No jump within ``max_probe_length`` bytes, or a jump outside 1..255
    """
    base = len(_encrypt(oracle, b""))
    for length in range(1, max_probe_length + 1):
        size = len(_encrypt(oracle, bytes([probe_byte]) * length))
        if size == base:
            continue
        block_size = size - base
        _check_block_size(block_size)
        logger.info("detected block size %d after %d probe bytes", block_size, length)
        return block_size
    raise BrokenOracle(f"output length never changed within {max_probe_length} probe bytes")

def count_prefix_blocks(oracle, block_size: int, byte0: int = 0x00, byte1: int = 0x01) -> int:
    """
    Number of whole blocks the hidden prefix occupies.

    The first block that differs between ``encrypt([byte0])`` and
    ``encrypt([byte1])`` is the block the single input byte landed in.
    """
    if byte0 == byte1:
        raise ValueError("probe bytes must differ")
    _check_block_size(block_size)
    first = split_blocks(_encrypt(oracle, bytes([byte0])), block_size)
    second = split_blocks(_encrypt(oracle, bytes([byte1])), block_size)
    for index, (a, b) in enumerate(zip(first, second)):
        if a != b:
            logger.debug("outputs diverge at block %d", index)
            return index
    raise BrokenOracle("different inputs produced identical output")

def detect_ecb_ciphertext(ciphertext: bytes, block_size: int = 16, skip_blocks: int = 0) -> bool:
    """True if the two blocks following ``skip_blocks`` are identical."""
    blocks = split_blocks(ciphertext, block_size)[skip_blocks:skip_blocks + 2]
    if len(blocks) < 2 or len(blocks[1]) != block_size:
        raise InvalidBlockSize(len(ciphertext), block_size)
    return blocks[0] == blocks[1]

def detect_uses_ecb_mode(oracle, block_size: int, probe_byte: int = 0x00, alt_probe_byte: int = 0x01) -> bool:
    """
    Submit a run of identical blocks and check they encrypt identically.

    At least 48 bytes of probe are compared so a one-byte "block size" from
    a stream cipher cannot match by chance.
    """
    _check_block_size(block_size)
    repeats = max(3, _ceil_div(48, block_size))
    ciphertext = _encrypt(oracle, bytes([probe_byte]) * (block_size * repeats))
    prefix_blocks = count_prefix_blocks(oracle, block_size, probe_byte, alt_probe_byte)

    # The block holding the tail of the prefix is only partly probe.
    blocks = split_blocks(ciphertext, block_size)[prefix_blocks + 1:prefix_blocks + repeats]
    if len(blocks) < 2:
        raise BrokenOracle("output too short to compare probe blocks")
    uses_ecb = len(set(blocks)) == 1
    logger.info("oracle %s ECB", "uses" if uses_ecb else "does not use")
    return uses_ecb

def detect_uses_padding(oracle, block_size: int, probe_byte: int = 0x00) -> bool:
    if block_size <= 1:
        return False
    delta = len(_encrypt(oracle, bytes([probe_byte]))) - len(_encrypt(oracle, b""))
    return delta % block_size == 0

def detect_prefix_plus_suffix_size(oracle, block_size: int, probe_byte: int = 0x00) -> int:
    """
    Combined length of the hidden prefix and suffix.

    With padding, the number of bytes it takes to push the output into a new
    block tells how much of the last block the hidden content fills.
    """
    base = len(_encrypt(oracle, b""))
    if base == 0 or not detect_uses_padding(oracle, block_size, probe_byte):
        return base
    for length in range(1, block_size + 1):
        if len(_encrypt(oracle, bytes([probe_byte]) * length)) != base:
            return base - length
    raise BrokenOracle(f"output length did not change within {block_size} bytes")

def detect_prefix_offset(oracle, block_size: int, byte_offset: int, probe_byte: int) -> int:
    """
    Bytes of prefix inside the block starting at ``byte_offset``.

    A full block of probe bytes is shortened one byte at a time; the watched
    block stays the same until the first suffix byte slides into it.
    Returns ``block_size`` if it never changes.
    """
    require_deterministic(oracle)
    block = bytes([probe_byte]) * block_size
    window = slice(byte_offset, byte_offset + block_size)
    reference = _encrypt(oracle, block)[window]
    for position in range(block_size):
        if _encrypt(oracle, block[position + 1:])[window] != reference:
            return position
    return block_size

def detect_prefix_size(oracle, block_size: int, prefix_blocks: int,
                       byte0: int = 0x00, byte1: int = 0x01) -> int:
    """
    Exact prefix length.

    Runs ``detect_prefix_offset`` with two different probes and keeps the
    smaller answer, since a suffix starting with the probe byte delays the
    change by one position.

    Raises:
        BrokenOracle: Neither probe changed the watched block
    """
    require_deterministic(oracle)
    byte_offset = prefix_blocks * block_size
    remainder = min(
        detect_prefix_offset(oracle, block_size, byte_offset, byte0),
        detect_prefix_offset(oracle, block_size, byte_offset, byte1),
    )
    if remainder >= block_size:
        raise BrokenOracle("watched block never changed while shrinking the probe")
    return byte_offset + remainder

def detect_prefix_and_suffix_sizes(oracle, block_size: int, byte0: int = 0x00, byte1: int = 0x01) -> tuple:
    require_deterministic(oracle)
    prefix_blocks = count_prefix_blocks(oracle, block_size, byte0, byte1)
    prefix_size = detect_prefix_size(oracle, block_size, prefix_blocks, byte0, byte1)
    suffix_size = detect_prefix_plus_suffix_size(oracle, block_size, byte0) - prefix_size
    if suffix_size < 0:
        raise BrokenOracle(f"prefix of {prefix_size} bytes longer than all hidden content")
    logger.info("prefix %d bytes, suffix %d bytes", prefix_size, suffix_size)
    return prefix_size, suffix_size

# -----------------------------
# Byte-at-a-time Suffix Recovery
# -----------------------------
def decrypt_suffix(oracle, block_size: int, prefix_size: int, suffix_size: int,
                   filler_byte: int = 0x00) -> bytes:
    """
    Recover the hidden suffix one byte at a time.

    Filler completes the prefix's last block, then ``block_size - 1 - skip``
    more filler bytes push exactly one unknown suffix byte to the end of a
    block. The ciphertext of that block is a reference; trying all 256
    values for the last byte of the same block finds the one that matches.
    The reference table is computed once for all ``block_size`` alignments.

    Works against any deterministic block oracle, including CBC with a fixed
    IV, since everything before the watched block is identical between the
    reference and the candidates.

    Raises:
        NonDeterministicOracle: Oracle draws a fresh IV per call
        UnableToMatchByte: No candidate matched; carries the bytes recovered so far
    """
    require_deterministic(oracle)
    _check_block_size(block_size)
    if suffix_size <= 0:
        return b""

    prefix_blocks = _ceil_div(prefix_size, block_size)
    prefix_padding = -prefix_size % block_size
    known = bytearray([filler_byte]) * (prefix_padding + block_size - 1)
    references = [_encrypt(oracle, known[skip:]) for skip in range(block_size)]

    recovered = bytearray()
    for index in range(suffix_size):
        skip = index % block_size
        start = (prefix_blocks + index // block_size) * block_size
        target = references[skip][start:start + block_size]
        probe = bytes(known[skip:])

        for candidate in range(256):
            output = _encrypt(oracle, probe + bytes([candidate]))
            if len(target) == block_size and output[start:start + block_size] == target:
                break
        else:
            raise UnableToMatchByte(index, recovered)

        known.append(candidate)
        recovered.append(candidate)
        logger.debug("recovered suffix byte %d: %#04x", index, candidate)

    logger.info("recovered %d suffix bytes", len(recovered))
    return bytes(recovered)

def profile_oracle(oracle, params: Optional[AttackParams] = None) -> OracleProfile:
    """Measure block size, mode, padding and hidden content sizes of an oracle."""
    params = params or AttackParams()
    require_deterministic(oracle)
    block_size = detect_block_size(oracle, params.probe_byte, params.max_probe_length)
    if block_size > params.max_block_size:
        raise BrokenOracle(f"block size {block_size} exceeds {params.max_block_size}")

    uses_ecb = detect_uses_ecb_mode(oracle, block_size, params.probe_byte, params.alt_probe_byte)
    uses_padding = detect_uses_padding(oracle, block_size, params.probe_byte)
    prefix_size, suffix_size = detect_prefix_and_suffix_sizes(
        oracle, block_size, params.probe_byte, params.alt_probe_byte
    )
    return OracleProfile(block_size, uses_ecb, uses_padding, prefix_size, suffix_size)

def break_ecb_suffix(oracle, params: Optional[AttackParams] = None) -> bytes:
    """Profile the oracle, then decrypt its hidden suffix."""
    params = params or AttackParams()
    profile = profile_oracle(oracle, params)
    return decrypt_suffix(oracle, profile.block_size, profile.prefix_size,
                          profile.suffix_size, params.probe_byte)

# -----------------------------
# CBC Bit-flipping
# -----------------------------
def flip_block(ciphertext: bytes, block_index: int, known: bytes, desired: bytes,
               block_size: int = 16) -> bytes:
    """
    Turn ``known`` into ``desired`` at the start of plaintext block ``block_index``.

    CBC decryption XORs the previous ciphertext block into each plaintext
    block, so XORing ``known ^ desired`` into block ``block_index - 1``
    rewrites the target. Block ``block_index - 1`` itself decrypts to noise.
    """
    mask = fixed_xor(known, desired)
    if len(mask) > block_size:
        raise ValueError(f"flip of {len(mask)} bytes does not fit a {block_size}-byte block")
    if block_index < 1 or (block_index + 1) * block_size > len(ciphertext):
        raise InvalidOffset(len(ciphertext), block_index * block_size)

    forged = bytearray(ciphertext)
    start = (block_index - 1) * block_size
    fixed_xor_mut(memoryview(forged)[start:start + len(mask)], mask)
    return bytes(forged)

def cbc_bitflip_inject(oracle, payload: bytes, block_size: int, prefix_size: int,
                       params: Optional[AttackParams] = None) -> bytes:
    """
    Forge ``payload`` into the plaintext right after the prefix.

    The input is filler to finish the prefix's block, one sacrificial block
    and one block whose start is flipped into the payload.
    """
    params = params or AttackParams()
    require_deterministic(oracle)
    if not 0 < len(payload) <= block_size:
        raise ValueError(f"payload must be 1..{block_size} bytes")

    filler = bytes([params.filler_byte])
    sacrificial = _ceil_div(prefix_size, block_size)
    ciphertext = _encrypt(oracle, filler * (-prefix_size % block_size + 2 * block_size))
    logger.info("flipping block %d into %r", sacrificial + 1, payload)
    return flip_block(ciphertext, sacrificial + 1, filler * len(payload), payload, block_size)

def cbc_bitflip_append(oracle, payload: bytes, params: Optional[AttackParams] = None) -> bytes:
    """
    Forge ``payload`` as the very end of the plaintext.

    Enough filler is submitted to make prefix and suffix fill whole blocks,
    so the final plaintext block is a full block of PKCS#7 padding. That
    block is known, so it is flipped into ``pad(payload)``. The suffix's
    last block is sacrificed.
    """
    params = params or AttackParams()
    require_deterministic(oracle)
    probe = params.filler_byte
    block_size = detect_block_size(oracle, probe, params.max_probe_length)
    if not detect_uses_padding(oracle, block_size, probe):
        raise BrokenOracle("oracle does not pad; there is no known final block")
    if not 0 < len(payload) < block_size:
        raise ValueError(f"payload must be 1..{block_size - 1} bytes")

    hidden = detect_prefix_plus_suffix_size(oracle, block_size, probe)
    ciphertext = _encrypt(oracle, bytes([probe]) * (-hidden % block_size))
    last = len(ciphertext) // block_size - 1
    logger.info("flipping padding block %d into %r", last, payload)
    return flip_block(ciphertext, last, bytes([block_size]) * block_size,
                      pad_pkcs7(payload, block_size), block_size)

# -----------------------------
# CTR
# -----------------------------
def ctr_bitflip_inject(oracle, payload: bytes, params: Optional[AttackParams] = None) -> bytes:
    """
    Forge ``payload`` right after the prefix of a fixed-nonce CTR oracle.

    CTR ciphertext is plaintext XOR keystream, so with the prefix length
    found at byte granularity the filler is rewritten directly.
    """
    params = params or AttackParams()
    require_deterministic(oracle)
    filler = params.filler_byte
    prefix_size = count_prefix_blocks(oracle, 1, filler, filler ^ 0x01)
    known = bytes([filler]) * len(payload)

    forged = bytearray(_encrypt(oracle, known))
    if prefix_size + len(payload) > len(forged):
        raise BrokenOracle("output shorter than prefix plus payload")
    fixed_xor_mut(memoryview(forged)[prefix_size:prefix_size + len(payload)], fixed_xor(known, payload))
    logger.info("flipped %d bytes at offset %d", len(payload), prefix_size)
    return bytes(forged)

def recover_ctr_plaintext(oracle, ciphertext: bytes) -> bytes:
    """
    Decrypt a CTR ciphertext through a random-access ``edit`` oracle.

    Editing the whole ciphertext to zeros hands back the raw keystream.
    """
    require_deterministic(oracle)
    keystream = bytes(oracle.edit(ciphertext, 0, bytes(len(ciphertext))))
    if len(keystream) != len(ciphertext):
        raise BrokenOracle(f"edit returned {len(keystream)} bytes for {len(ciphertext)}-byte input")
    logger.info("recovered %d-byte keystream", len(keystream))
    return fixed_xor(ciphertext, keystream)

# -----------------------------
# CBC With Key As IV
# -----------------------------
def recover_cbc_key_from_iv(oracle, ciphertext: bytes, params: Optional[AttackParams] = None) -> bytes:
    """
    Recover the key of a CBC service that uses it as the IV.

    Decrypting ``C1 || X || C1`` gives P1' = D(C1) ^ key and P3' = D(C1) ^ X,
    so key = P1' ^ P3' ^ X. The service has to be coaxed into showing the
    plaintext; it does that when it rejects high-ASCII bytes, which random
    middle blocks produce almost always. Each ``X`` that decrypts cleanly or
    fails on padding is skipped.

    Raises:
        BrokenOracle: No attempt leaked plaintext
    """
    params = params or AttackParams()
    block_size = 16
    if len(ciphertext) < block_size:
        raise InvalidBlockSize(len(ciphertext), block_size)

    first = bytes(ciphertext[:block_size])
    for attempt in range(params.max_key_recovery_attempts):
        middle = attempt.to_bytes(block_size, "big")
        try:
            oracle.decrypt(first + middle + first)
        except InvalidPlaintext as leak:
            leaked = leak.plaintext
            if len(leaked) < 3 * block_size:
                raise BrokenOracle(f"leaked plaintext is only {len(leaked)} bytes") from leak
            key = fixed_xor(fixed_xor(leaked[:block_size], leaked[2 * block_size:3 * block_size]), middle)
            logger.info("recovered key on attempt %d", attempt)
            return key
        except Pkcs7Error:
            logger.debug("attempt %d rejected on padding", attempt)
    raise BrokenOracle(f"no plaintext leaked in {params.max_key_recovery_attempts} attempts")

# -----------------------------
# ECB Cut-and-paste
# -----------------------------
def ecb_cut_and_paste(oracle, value: bytes, replaced_size: int, params: Optional[AttackParams] = None) -> bytes:
    """
    Replace the last ``replaced_size`` bytes of the hidden suffix with ``value``.

    ECB encrypts blocks independently, so a block-aligned ``pad(value)``
    encrypted in isolation can be pasted after a ciphertext whose suffix was
    pushed until the bytes to replace start a fresh block.
    """
    params = params or AttackParams()
    require_deterministic(oracle)
    if not value:
        raise ValueError("value must not be empty")

    probe = params.filler_byte
    block_size = detect_block_size(oracle, probe, params.max_probe_length)
    if not detect_uses_ecb_mode(oracle, block_size, probe, probe ^ 0x01):
        raise BrokenOracle("cut-and-paste needs an ECB oracle")
    prefix_size, suffix_size = detect_prefix_and_suffix_sizes(oracle, block_size, probe, probe ^ 0x01)
    if replaced_size > suffix_size:
        raise BrokenOracle(f"cannot replace {replaced_size} bytes of a {suffix_size}-byte suffix")

    filler = bytes([probe])
    prefix_padding = -prefix_size % block_size
    suffix_padding = -suffix_size % block_size
    padded_value = pad_pkcs7(value, block_size)

    start = _ceil_div(prefix_size, block_size) * block_size
    isolated = _encrypt(oracle, filler * prefix_padding + padded_value)
    encrypted_value = isolated[start:start + len(padded_value)]

    aligned = _encrypt(oracle, filler * (prefix_padding + suffix_padding + replaced_size))
    # The bytes being replaced now start exactly here.
    keep = prefix_size + prefix_padding + suffix_padding + suffix_size
    logger.info("pasting %d encrypted bytes after %d kept bytes", len(encrypted_value), keep)
    return aligned[:keep] + encrypted_value
