import secrets
from typing import Optional

from blockbreak.models import (AesKey, KeySize)

def generate_key(size: Optional[KeySize] = None) -> AesKey:
    """
    Generates a random AES key.

    When no size is given one of AES-128/192/256 is picked uniformly, so an
    attack exercised against many generated keys covers every key schedule.

    Args:
        size (KeySize, optional): Force a specific key size

    Returns:
        AesKey: Fresh key drawn from the OS CSPRNG
    """
    size = size or secrets.choice(list(KeySize))
    return AesKey(size, secrets.token_bytes(size.value))

def generate_iv() -> bytes:
    """Random 16-byte IV or CTR nonce."""
    return secrets.token_bytes(16)

def random_bytes(low: int, high: int) -> bytes:
    """Random bytes with a length drawn uniformly from [low, high]."""
    return secrets.token_bytes(low + secrets.randbelow(high - low + 1))

def coin_flip() -> bool:
    return secrets.randbelow(2) == 1
