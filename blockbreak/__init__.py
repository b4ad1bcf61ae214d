"""
blockbreak - AES mode oracles and the attacks that break them

Key Cryptographic Principles Documented:
Block Cipher Modes:

ECB encrypts every block independently; equal plaintext blocks give equal ciphertext blocks
CBC chains each block through the previous ciphertext; the chain is malleable one block back
CTR turns the block cipher into a keystream; ciphertext is plaintext XOR keystream

Padding:

PKCS#7 appends n bytes of value n; aligned input receives a full extra block
Validation failures are typed so a leaking caller can be modelled exactly

Chosen-Plaintext Oracles:

An oracle encrypts prefix ++ input ++ suffix under a fixed secret key
Output lengths reveal the block size, the padding and the hidden content sizes
Output blocks reveal ECB, the prefix boundary and, byte by byte, the suffix

Forgery and Key Recovery:

CBC and CTR bit-flipping rewrite chosen plaintext without the key
ECB cut-and-paste splices independently encrypted blocks
A random-access CTR edit leaks the keystream
CBC with key reused as IV leaks the key through a verbose error

This implementation is for educational purposes. The attacks are real;
the victims are deliberately broken.
"""
from blockbreak.errors import (
    BlockBreakError, AesError, Pkcs7Error, OracleError, BrokenOracle,
    UnableToMatchByte, NonDeterministicOracle, InvalidPlaintext
)

from blockbreak.models import (
    AesKey, AttackParams, CounterLayout, KeySize, Mode, OracleProfile, PaddingScheme
)

from blockbreak.core import (
    EncryptionContext, RandomAccessCtrOracle
)

from blockbreak.cryptanalysis import (
    detect_block_size, detect_uses_ecb_mode, count_prefix_blocks, detect_prefix_size,
    detect_uses_padding, detect_prefix_plus_suffix_size, decrypt_suffix, profile_oracle,
    break_ecb_suffix
)
