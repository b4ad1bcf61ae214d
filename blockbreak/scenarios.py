"""
End-to-end attack scenarios.

Each runner builds a victim with fresh random secrets, attacks it through
the oracle interface only, then checks the result against the victim's
ground truth and prints a short report. Runners return True on success.
"""
import logging
from base64 import b64decode
from typing import Optional

from blockbreak.core import (EncryptionContext, RandomAccessCtrOracle)
from blockbreak.cryptanalysis import (
    break_ecb_suffix, cbc_bitflip_append, ctr_bitflip_inject, detect_block_size,
    detect_uses_ecb_mode, ecb_cut_and_paste, profile_oracle, recover_cbc_key_from_iv,
    recover_ctr_plaintext
)
from blockbreak.models import (AttackParams, Mode, bcolors)
from blockbreak.utils.keygen import (generate_key, random_bytes)
from blockbreak.utils.keystore import (retrieve_context_from_keystore, store_context_in_keystore)
from blockbreak.victims import (CookieOracle, KeyAsIvOracle, ProfileOracle, RandomModeOracle)

logger = logging.getLogger(__name__)

SECRET_SUFFIX = b64decode(
    "Um9sbGluJyBpbiBteSA1LjAKV2l0aCBteSByYWctdG9wIGRvd24gc28gbXkgaGFpciBjYW4gYmxvdwpUaGUgZ2lybGllcyBvbiBzdGFuZGJ5IHdh"
    "dmluZyBqdXN0IHRvIHNheSBoaQpEaWQgeW91IHN0b3A/IE5vLCBJIGp1c3QgZHJvdmUgYnkK"
)
ADMIN_PAYLOAD = b";admin=true;"

def _report(name: str, ok: bool, detail: str = "") -> bool:
    status = f"{bcolors.OKGREEN}OK{bcolors.ENDC}" if ok else f"{bcolors.FAIL}FAILED{bcolors.ENDC}"
    print(f"{bcolors.BOLD}{name}{bcolors.ENDC}: {status}")
    if detail:
        print(detail)
    return ok

# -----------------------------
# ECB
# -----------------------------
def run_ecb_suffix(params: Optional[AttackParams] = None) -> bool:
    """Byte-at-a-time decryption of a secret appended after the input."""
    context = EncryptionContext.static_content(b"", SECRET_SUFFIX)
    recovered = break_ecb_suffix(context, params)
    return _report("ecb-suffix", recovered == SECRET_SUFFIX, recovered.decode("latin-1"))

def run_ecb_prefix(params: Optional[AttackParams] = None) -> bool:
    """Same as ecb-suffix with 1..200 random bytes prepended to the input."""
    context = EncryptionContext.random_prefix(SECRET_SUFFIX)
    profile = profile_oracle(context, params)
    recovered = break_ecb_suffix(context, params)
    detail = f"prefix {profile.prefix_size} bytes (actual {len(context.prefix)})\n{recovered.decode('latin-1')}"
    return _report("ecb-prefix", recovered == SECRET_SUFFIX and profile.prefix_size == len(context.prefix), detail)

def run_ecb_detect(params: Optional[AttackParams] = None, trials: int = 10) -> bool:
    """Tell ECB from random-IV CBC on oracles that pick one at random."""
    params = params or AttackParams()
    correct = 0
    for trial in range(trials):
        oracle = RandomModeOracle()
        block_size = detect_block_size(oracle, params.probe_byte, params.max_probe_length)
        guess = detect_uses_ecb_mode(oracle, block_size, params.probe_byte, params.alt_probe_byte)
        logger.debug("trial %d: guessed %s, actual %s", trial, "ECB" if guess else "CBC", oracle.mode.name)
        correct += guess == (oracle.mode is Mode.ECB)
    return _report("ecb-detect", correct == trials, f"{correct}/{trials} modes identified")

def run_ecb_cut_paste(params: Optional[AttackParams] = None) -> bool:
    """Swap the trailing ``user`` of an encrypted profile for ``admin``."""
    oracle = ProfileOracle()
    forged = ecb_cut_and_paste(oracle, b"admin", len(b"user"), params)
    profile = oracle.decrypt_to_profile(forged)
    return _report("ecb-cut-paste", profile.get("role") == "admin", str(profile))

# -----------------------------
# Bit-flipping
# -----------------------------
def run_cbc_bitflip(params: Optional[AttackParams] = None) -> bool:
    oracle = CookieOracle(Mode.CBC)
    forged = cbc_bitflip_append(oracle, ADMIN_PAYLOAD, params)
    cookies = oracle.decrypt_cookies(forged)
    return _report("cbc-bitflip", cookies[-1] == ("admin", "true"), str(cookies))

def run_ctr_bitflip(params: Optional[AttackParams] = None) -> bool:
    oracle = CookieOracle(Mode.CTR)
    forged = ctr_bitflip_inject(oracle, ADMIN_PAYLOAD, params)
    cookies = oracle.decrypt_cookies(forged)
    return _report("ctr-bitflip", oracle.is_admin(forged), str(cookies))

# -----------------------------
# Keystream And Key Recovery
# -----------------------------
def run_ctr_edit(params: Optional[AttackParams] = None) -> bool:
    """Recover a CTR plaintext through a random-access edit function."""
    oracle = RandomAccessCtrOracle.random()
    plaintext = SECRET_SUFFIX + random_bytes(0, 64)
    recovered = recover_ctr_plaintext(oracle, oracle.encrypt(plaintext))
    return _report("ctr-edit", recovered == plaintext, f"{len(recovered)} bytes recovered")

def run_cbc_iv_key(params: Optional[AttackParams] = None) -> bool:
    """Recover a CBC key that doubles as the IV."""
    oracle = KeyAsIvOracle()
    message = b"https://example.com/?comment1=cooking%20MCs;userdata=hello;comment2=bacon"
    ciphertext = oracle.encrypt(message)
    key = recover_cbc_key_from_iv(oracle, ciphertext, params)
    ok = KeyAsIvOracle.verify_decrypt(key, ciphertext) == message
    return _report("cbc-iv-key", ok, f"key {key.hex()}")

SCENARIOS = {
    "ecb-suffix": run_ecb_suffix,
    "ecb-prefix": run_ecb_prefix,
    "ecb-detect": run_ecb_detect,
    "ecb-cut-paste": run_ecb_cut_paste,
    "cbc-bitflip": run_cbc_bitflip,
    "ctr-bitflip": run_ctr_bitflip,
    "ctr-edit": run_ctr_edit,
    "cbc-iv-key": run_cbc_iv_key,
}

def run_scenario(name: str, params: Optional[AttackParams] = None) -> bool:
    if name not in SCENARIOS:
        raise ValueError(f"Unknown scenario: {name}")
    return SCENARIOS[name](params)

# -----------------------------
# Sealed Contexts
# -----------------------------
def seal_context(passphrase: str, name: str, keystore_file: str, suffix: bytes = SECRET_SUFFIX,
                 prefix_range: Optional[tuple] = None) -> EncryptionContext:
    """
    Store a fresh ECB/PKCS#7 context in the keystore.

    ``prefix_range=(low, high)`` adds a random prefix of that many bytes.
    """
    prefix = random_bytes(*prefix_range) if prefix_range else b""
    context = EncryptionContext(generate_key(), prefix, suffix)
    store_context_in_keystore(passphrase, name, context, keystore_file)
    print(f"Context {name} sealed in {keystore_file}")
    return context

def attack_sealed(passphrase: str, name: str, keystore_file: str,
                  params: Optional[AttackParams] = None) -> bool:
    """Break the suffix of a sealed context; True iff it matches the sealed value."""
    context = retrieve_context_from_keystore(passphrase, name, keystore_file)
    recovered = break_ecb_suffix(context, params)
    return _report(f"attack {name}", recovered == context.suffix, recovered.decode("latin-1"))
