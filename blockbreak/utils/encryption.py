import numpy as np

from blockbreak.errors import (
    InvalidBlockSize, InvalidInitializationVectorSize, XorLengthMismatch
)
from blockbreak.models import (AesKey, CounterLayout)

BLOCK_SIZE = 16

# -----------------------------
# Utilities
# -----------------------------
def fixed_xor(a: bytes, b: bytes) -> bytes:
    """
    XOR two equal-length byte strings.

    Raises:
        XorLengthMismatch: If the operands differ in length
    """
    if len(a) != len(b):
        raise XorLengthMismatch(len(a), len(b))
    return (np.frombuffer(bytes(a), dtype=np.uint8) ^ np.frombuffer(bytes(b), dtype=np.uint8)).tobytes()

def fixed_xor_mut(target, mask: bytes) -> None:
    """
    XOR ``mask`` into ``target`` in place.

    ``target`` must be writable (a bytearray or a memoryview slice of one).
    """
    view = np.frombuffer(target, dtype=np.uint8)
    other = np.frombuffer(bytes(mask), dtype=np.uint8)
    if view.shape != other.shape:
        raise XorLengthMismatch(view.shape[0], other.shape[0])
    np.bitwise_xor(view, other, out=view)

def split_blocks(data: bytes, block_size: int = BLOCK_SIZE) -> list:
    return [data[i:i + block_size] for i in range(0, len(data), block_size)]

def check_iv(iv: bytes) -> bytes:
    if iv is None or len(iv) != BLOCK_SIZE:
        raise InvalidInitializationVectorSize(0 if iv is None else len(iv))
    return bytes(iv)

def _check_aligned(data: bytes):
    if len(data) % BLOCK_SIZE != 0:
        raise InvalidBlockSize(len(data), BLOCK_SIZE)

# -----------------------------
# Block Primitive
# -----------------------------
class AesBlockCipher:
    """
    Single-block AES permutation.

    The block transform itself comes from ``cryptography``; encryptor and
    decryptor contexts are opened once and fed one block at a time.
    """

    def __init__(self, key):
        self.key = AesKey.coerce(key)
        self._encryptor = None
        self._decryptor = None

    def encrypt_block(self, block: bytes) -> bytes:
        if len(block) != BLOCK_SIZE:
            raise InvalidBlockSize(len(block), BLOCK_SIZE)
        if self._encryptor is None:
            self._encryptor = self.key.cipher.encryptor()
        return self._encryptor.update(bytes(block))

    def decrypt_block(self, block: bytes) -> bytes:
        if len(block) != BLOCK_SIZE:
            raise InvalidBlockSize(len(block), BLOCK_SIZE)
        if self._decryptor is None:
            self._decryptor = self.key.cipher.decryptor()
        return self._decryptor.update(bytes(block))

def encrypt_block(block: bytes, key) -> bytes:
    return AesBlockCipher(key).encrypt_block(block)

def decrypt_block(block: bytes, key) -> bytes:
    return AesBlockCipher(key).decrypt_block(block)

# -----------------------------
# ECB
# -----------------------------
def encrypt_ecb(data: bytes, key) -> bytes:
    """
    Electronic Codebook (ECB) mode encryption.

    ECB Mode: C[i] = Encrypt(P[i])

    No chaining: identical plaintext blocks give identical ciphertext blocks,
    which is the fingerprint the oracle attacks look for.
    """
    _check_aligned(data)
    cipher = AesBlockCipher(key)
    return b"".join(cipher.encrypt_block(block) for block in split_blocks(data))

def decrypt_ecb(data: bytes, key) -> bytes:
    _check_aligned(data)
    cipher = AesBlockCipher(key)
    return b"".join(cipher.decrypt_block(block) for block in split_blocks(data))

# -----------------------------
# CBC
# -----------------------------
def encrypt_cbc(data: bytes, key, iv: bytes) -> bytes:
    """
    Cipher Block Chaining (CBC) mode encryption.

    CBC Mode: C[i] = Encrypt(P[i] ⊕ C[i-1]), where C[-1] = IV

    Each plaintext block is XORed with the previous ciphertext block before encryption.
    Flipping a bit of C[i-1] flips the same bit of P[i] on decryption, which
    is what the bit-flipping forgeries rely on.
    """
    _check_aligned(data)
    prev_ciphertext = check_iv(iv)
    cipher = AesBlockCipher(key)

    encrypted_blocks = []
    for plaintext_block in split_blocks(data):
        chained_input = fixed_xor(plaintext_block, prev_ciphertext)
        prev_ciphertext = cipher.encrypt_block(chained_input)
        encrypted_blocks.append(prev_ciphertext)
    return b"".join(encrypted_blocks)

def decrypt_cbc(data: bytes, key, iv: bytes) -> bytes:
    """
    CBC mode decryption: P[i] = Decrypt(C[i]) ⊕ C[i-1]
    """
    _check_aligned(data)
    prev_ciphertext = check_iv(iv)
    cipher = AesBlockCipher(key)

    decrypted_blocks = []
    for ciphertext_block in split_blocks(data):
        decrypted_intermediate = cipher.decrypt_block(ciphertext_block)
        decrypted_blocks.append(fixed_xor(decrypted_intermediate, prev_ciphertext))
        prev_ciphertext = ciphertext_block
    return b"".join(decrypted_blocks)

# -----------------------------
# CTR
# -----------------------------
def increment_counter(counter: bytes, layout: CounterLayout, blocks: int = 1) -> bytes:
    """
    Advance a CTR counter block by ``blocks`` steps.

    Overflow wraps inside the counter field only: the full 128 bits for
    NIST SP 800-38A, the low-order little-endian half for LITTLE_ENDIAN_64.
    """
    match layout:
        case CounterLayout.NIST_SP800_38A:
            value = (int.from_bytes(counter, "big") + blocks) % (1 << 128)
            return value.to_bytes(BLOCK_SIZE, "big")
        case CounterLayout.LITTLE_ENDIAN_64:
            value = (int.from_bytes(counter[8:], "little") + blocks) % (1 << 64)
            return bytes(counter[:8]) + value.to_bytes(8, "little")
        case _:
            raise ValueError(f"Unknown counter layout: {layout}")


class CtrKeystream:
    """
    Lazily generated CTR keystream.

    Holds the key, the next counter block, the current 16-byte keystream
    block and the read offset into it. The stream is unbounded; to restart
    it, build a new one from the original nonce.
    """

    def __init__(self, key, nonce: bytes, layout: CounterLayout = CounterLayout.LITTLE_ENDIAN_64):
        self._cipher = AesBlockCipher(key)
        self._counter = check_iv(nonce)
        self.layout = layout
        self._block = b""
        self._offset = 0

    def __iter__(self):
        return self

    def __next__(self) -> int:
        if self._offset >= len(self._block):
            self._refill()
        byte = self._block[self._offset]
        self._offset += 1
        return byte

    def _refill(self):
        self._block = self._cipher.encrypt_block(self._counter)
        self._counter = increment_counter(self._counter, self.layout)
        self._offset = 0

    def skip(self, count: int) -> None:
        """Discard ``count`` keystream bytes without generating whole blocks in between."""
        buffered = len(self._block) - self._offset
        if count <= buffered:
            self._offset += count
            return
        count -= buffered
        self._block, self._offset = b"", 0
        blocks, rest = divmod(count, BLOCK_SIZE)
        self._counter = increment_counter(self._counter, self.layout, blocks)
        if rest:
            self._refill()
            self._offset = rest

    def take(self, count: int) -> bytes:
        out = bytearray()
        while len(out) < count:
            if self._offset >= len(self._block):
                self._refill()
            chunk = self._block[self._offset:self._offset + count - len(out)]
            out += chunk
            self._offset += len(chunk)
        return bytes(out)


def crypt_ctr(data: bytes, key, nonce: bytes,
              layout: CounterLayout = CounterLayout.LITTLE_ENDIAN_64, offset: int = 0) -> bytes:
    """
    Counter (CTR) mode transform; encryption and decryption are the same operation.

    CTR Mode: C[i] = P[i] ⊕ Encrypt(Counter[i])

    Args:
        data: Bytes to transform, any length
        key: AES key (AesKey or 16/24/32 raw bytes)
        nonce: Initial 16-byte counter block
        layout: Counter increment convention
        offset: Position in the keystream the first byte of ``data`` lines up with

    Returns:
        Transformed bytes, same length as ``data``
    """
    nonce = check_iv(nonce)
    if not data:
        return b""
    keystream = CtrKeystream(key, nonce, layout)
    keystream.skip(offset)
    return fixed_xor(data, keystream.take(len(data)))
