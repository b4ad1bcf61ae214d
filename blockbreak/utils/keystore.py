import json
import secrets
import pickle
from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from cryptography.hazmat.primitives import hashes
from base64 import b64encode, b64decode
from blockbreak.core import EncryptionContext
from blockbreak.models import (bcolors)
# -----------------------------
# Sealed Context Storage
# -----------------------------
def _derive_fernet(passphrase: str, salt: bytes) -> Fernet:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,                # 256-bit key for Fernet
        salt=salt,
        iterations=100000,
    )
    return Fernet(b64encode(kdf.derive(passphrase.encode())))

def create_keystore(passphrase: str, keystore_file: str):
    """
    Create an empty passphrase-protected keystore.

    Sealed encryption contexts (key, prefix, suffix, mode) are kept here so a
    scenario can be set up once and attacked later without the attacking
    side ever reading the secret material.

    - PBKDF2-HMAC-SHA256, 100k iterations, random 16-byte salt
    - Fernet (AES-128-CBC + HMAC-SHA256) per stored context

    Args:
        passphrase: User passphrase for keystore encryption
        keystore_file: File path for keystore storage
    """
    salt = secrets.token_bytes(16)

    # Fail early on a passphrase the KDF cannot handle
    _derive_fernet(passphrase, salt)

    keystore = {"salt": b64encode(salt).decode(), "contexts": {}}
    with open(keystore_file, "wb") as kf:
        pickle.dump(keystore, kf)
    print(f"Keystore created at {keystore_file}")

def load_keystore(passphrase: str, keystore_file: str):
    """
    Returns:
        Tuple of (keystore_data, fernet_cipher)
    """
    with open(keystore_file, "rb") as kf:
        keystore = pickle.load(kf)
    salt = b64decode(keystore["salt"])
    return keystore, _derive_fernet(passphrase, salt)

def store_context_in_keystore(passphrase: str, name: str, context: EncryptionContext, keystore_file: str):
    """
    Seal an encryption context under ``name``, replacing any previous entry.
    """
    keystore, fernet = load_keystore(passphrase, keystore_file)
    token = fernet.encrypt(json.dumps(context.to_dict()).encode()).decode()
    keystore["contexts"][name] = token
    with open(keystore_file, "wb") as kf:
        pickle.dump(keystore, kf)

def retrieve_context_from_keystore(passphrase: str, name: str, keystore_file: str) -> EncryptionContext:
    """
    Unseal the context stored under ``name``.

    Raises:
        ValueError: If the name is unknown or the passphrase is wrong
    """
    keystore, fernet = load_keystore(passphrase, keystore_file)
    if name not in keystore["contexts"]:
        raise ValueError(f"{bcolors.FAIL}Context {name} not found in keystore{bcolors.ENDC}")

    try:
        sealed = fernet.decrypt(keystore["contexts"][name].encode())
    except InvalidToken:
        raise ValueError(f"{bcolors.FAIL}Failed to unseal context. Wrong passphrase?{bcolors.ENDC}") from None
    return EncryptionContext.from_dict(json.loads(sealed.decode()))

def list_contexts(keystore_file: str) -> list:
    """Names of sealed contexts; needs no passphrase."""
    with open(keystore_file, "rb") as kf:
        return sorted(pickle.load(kf)["contexts"])
