import logging
from base64 import b64decode

import pytest

from blockbreak.core import (EncryptionContext, RandomAccessCtrOracle)
from blockbreak.cryptanalysis import (
    break_ecb_suffix, cbc_bitflip_append, cbc_bitflip_inject, count_prefix_blocks,
    ctr_bitflip_inject, decrypt_suffix, detect_block_size, detect_ecb_ciphertext,
    detect_prefix_and_suffix_sizes, detect_prefix_offset, detect_prefix_plus_suffix_size, detect_prefix_size,
    detect_uses_ecb_mode, detect_uses_padding, ecb_cut_and_paste, flip_block,
    profile_oracle, recover_cbc_key_from_iv, recover_ctr_plaintext, require_deterministic
)
from blockbreak.errors import (
    BrokenOracle, InvalidOffset, InvalidPaddingByte, InvalidPlaintext, NonDeterministicOracle, UnableToMatchByte
)
from blockbreak.models import (AesKey, AttackParams, KeySize, Mode, PaddingScheme)
from blockbreak.utils.encryption import encrypt_ecb
from blockbreak.utils.keygen import (generate_iv, generate_key)
from blockbreak.victims import (CookieOracle, KeyAsIvOracle, ProfileOracle, RandomModeOracle)

SUFFIX = b64decode(
    "Um9sbGluJyBpbiBteSA1LjAKV2l0aCBteSByYWctdG9wIGRvd24gc28gbXkgaGFpciBjYW4gYmxvdwpUaGUgZ2lybGllcyBvbiBzdGFuZGJ5IHdh"
    "dmluZyBqdXN0IHRvIHNheSBoaQpEaWQgeW91IHN0b3A/IE5vLCBJIGp1c3QgZHJvdmUgYnkK"
)
SHORT_SECRET = b"attack at dawn; bring snacks"
FILLER = AttackParams().filler_byte


@pytest.fixture
def scenario_a():
    key = AesKey.from_bytes(b64decode("NQwfQA0YVgRvHdWtq1WqsA=="))
    return EncryptionContext(key, b"", SUFFIX, Mode.ECB, PaddingScheme.PKCS7)


# -----------------------------
# ECB suffix recovery
# -----------------------------
def test_scenario_a_detection(scenario_a):
    assert len(SUFFIX) == 138
    assert detect_block_size(scenario_a) == 16
    assert detect_uses_ecb_mode(scenario_a, 16)
    assert count_prefix_blocks(scenario_a, 16) == 0
    assert detect_prefix_size(scenario_a, 16, 0) == 0
    assert detect_uses_padding(scenario_a, 16)
    assert detect_prefix_plus_suffix_size(scenario_a, 16) == 138


def test_scenario_a_decrypts_suffix(scenario_a):
    assert decrypt_suffix(scenario_a, 16, 0, 138) == SUFFIX


def test_profile_oracle_scenario_a(scenario_a):
    profile = profile_oracle(scenario_a)
    assert (profile.block_size, profile.uses_ecb, profile.uses_padding) == (16, True, True)
    assert (profile.prefix_size, profile.suffix_size, profile.prefix_blocks) == (0, 138, 0)


@pytest.mark.parametrize("size", list(KeySize))
def test_break_suffix_every_key_size(size):
    context = EncryptionContext(generate_key(size), b"", SHORT_SECRET)
    assert break_ecb_suffix(context) == SHORT_SECRET


@pytest.mark.parametrize("prefix_size", [1, 15, 16, 17, 40])
def test_break_suffix_behind_prefix(prefix_size):
    context = EncryptionContext(generate_key(KeySize.AES128), b"P" * prefix_size, SHORT_SECRET)
    profile = profile_oracle(context)
    assert profile.prefix_size == prefix_size
    assert profile.suffix_size == len(SHORT_SECRET)
    assert break_ecb_suffix(context) == SHORT_SECRET


@pytest.mark.parametrize("attempt", range(3))
def test_break_suffix_random_prefix(attempt):
    context = EncryptionContext.random_prefix(SHORT_SECRET)
    assert profile_oracle(context).prefix_size == len(context.prefix)
    assert break_ecb_suffix(context) == SHORT_SECRET


@pytest.mark.parametrize("attempt", range(3))
def test_break_suffix_random_context(attempt):
    context = EncryptionContext.random()
    assert break_ecb_suffix(context) == context.suffix


def test_suffix_starting_with_probe_byte():
    secret = b"\x00\x00\x01 zero-led secret"
    context = EncryptionContext(generate_key(KeySize.AES128), b"abc", secret)
    assert detect_prefix_and_suffix_sizes(context, 16) == (3, len(secret))
    assert break_ecb_suffix(context) == secret


def test_decrypt_suffix_fixed_iv_cbc():
    context = EncryptionContext(generate_key(KeySize.AES128), b"", SHORT_SECRET, Mode.CBC, iv=generate_iv())
    assert not detect_uses_ecb_mode(context, 16)
    assert decrypt_suffix(context, 16, 0, len(SHORT_SECRET)) == SHORT_SECRET


def test_empty_suffix():
    context = EncryptionContext(generate_key(KeySize.AES128), b"prefix", b"")
    assert decrypt_suffix(context, 16, 6, 0) == b""


def test_ctr_oracle_looks_like_one_byte_blocks():
    context = EncryptionContext(generate_key(KeySize.AES128), b"12345", b"678", Mode.CTR, iv=generate_iv())
    assert detect_block_size(context) == 1
    assert not detect_uses_padding(context, 1)
    assert detect_prefix_plus_suffix_size(context, 1) == 8
    assert count_prefix_blocks(context, 1) == 5
    assert not detect_uses_ecb_mode(context, 1)


def test_detection_logs_findings(scenario_a, caplog):
    with caplog.at_level(logging.INFO, logger="blockbreak.cryptanalysis"):
        detect_block_size(scenario_a)
    assert "detected block size 16" in caplog.text


# -----------------------------
# ECB detection
# -----------------------------
def test_detect_ecb_ciphertext():
    key = generate_key(KeySize.AES128)
    assert detect_ecb_ciphertext(encrypt_ecb(b"Q" * 48, key))
    assert not detect_ecb_ciphertext(encrypt_ecb(bytes(range(48)), key))
    assert detect_ecb_ciphertext(encrypt_ecb(bytes(range(16)) + b"Q" * 32, key), skip_blocks=1)


@pytest.mark.parametrize("attempt", range(20))
def test_random_mode_oracle_identified(attempt):
    oracle = RandomModeOracle()
    assert detect_uses_ecb_mode(oracle, 16) == (oracle.mode is Mode.ECB)


# -----------------------------
# Oracle failures
# -----------------------------
class ConstantOracle:
    def encrypt(self, data):
        return bytes(16)


class HugeBlockOracle:
    def encrypt(self, data):
        return bytes(300 * len(data))


class LyingOracle:
    """Draws a fresh IV per call but claims it does not."""
    deterministic = True

    def __init__(self):
        self._context = EncryptionContext(generate_key(KeySize.AES128), b"", SHORT_SECRET, Mode.CBC)

    def encrypt(self, data):
        return self._context.encrypt(data)


def test_constant_output_is_broken():
    with pytest.raises(BrokenOracle):
        detect_block_size(ConstantOracle())
    with pytest.raises(BrokenOracle):
        count_prefix_blocks(ConstantOracle(), 16)


def test_block_size_jump_out_of_range():
    with pytest.raises(BrokenOracle):
        detect_block_size(HugeBlockOracle())


def test_max_probe_length_bounds_detection():
    with pytest.raises(BrokenOracle) as excinfo:
        detect_block_size(ConstantOracle(), max_probe_length=8)
    assert "8 probe bytes" in excinfo.value.reason


def test_non_deterministic_oracle_rejected():
    context = EncryptionContext(generate_key(KeySize.AES128), b"", SHORT_SECRET, Mode.CBC)
    with pytest.raises(NonDeterministicOracle):
        require_deterministic(context)
    with pytest.raises(NonDeterministicOracle):
        decrypt_suffix(context, 16, 0, len(SHORT_SECRET))
    with pytest.raises(NonDeterministicOracle):
        profile_oracle(context)


def test_prefix_detection_rejects_random_iv():
    context = EncryptionContext(generate_key(KeySize.AES128), b"abc", b"secret", Mode.CBC)
    with pytest.raises(NonDeterministicOracle):
        detect_prefix_size(context, 16, 0)
    with pytest.raises(NonDeterministicOracle):
        detect_prefix_offset(context, 16, 0, 0)


def test_unmatched_byte_reports_progress():
    with pytest.raises(UnableToMatchByte) as excinfo:
        decrypt_suffix(LyingOracle(), 16, 0, len(SHORT_SECRET))
    assert excinfo.value.index == 0
    assert excinfo.value.recovered == b""


class TruncatedOracle:
    """Ten fixed bytes, then only the first input byte."""

    def encrypt(self, data):
        return bytes(10) + bytes(data[:1])


class VanishingOracle:
    """A fixed 16-byte header, except that empty input encrypts to nothing."""

    def encrypt(self, data):
        return bytes(16) + bytes(data) if data else b""


class ShortEditOracle:
    deterministic = True

    def edit(self, ciphertext, offset, data):
        return b"\x00"


class ShortLeakOracle:
    def decrypt(self, ciphertext):
        raise InvalidPlaintext(b"\xff" * 16)


def test_ecb_check_needs_enough_output():
    with pytest.raises(BrokenOracle, match="too short"):
        detect_uses_ecb_mode(TruncatedOracle(), 16)


def test_hidden_size_needs_a_length_change():
    with pytest.raises(BrokenOracle):
        detect_prefix_plus_suffix_size(ConstantOracle(), 16)


def test_prefix_size_needs_a_changing_block():
    with pytest.raises(BrokenOracle, match="never changed"):
        detect_prefix_size(ConstantOracle(), 16, 0)


def test_prefix_longer_than_hidden_content():
    with pytest.raises(BrokenOracle, match="longer than all hidden content"):
        detect_prefix_and_suffix_sizes(VanishingOracle(), 16)


def test_profile_respects_max_block_size(scenario_a):
    with pytest.raises(BrokenOracle, match="exceeds 8"):
        profile_oracle(scenario_a, AttackParams(max_block_size=8))


def test_cbc_bitflip_append_needs_padding():
    with pytest.raises(BrokenOracle, match="does not pad"):
        cbc_bitflip_append(CookieOracle(Mode.CTR), b";admin=true;")


def test_ctr_bitflip_needs_room_for_payload():
    with pytest.raises(BrokenOracle, match="shorter than prefix plus payload"):
        ctr_bitflip_inject(TruncatedOracle(), b";admin=true;")


def test_edit_must_preserve_length():
    with pytest.raises(BrokenOracle):
        recover_ctr_plaintext(ShortEditOracle(), bytes(10))


def test_leaked_plaintext_must_cover_three_blocks():
    with pytest.raises(BrokenOracle, match="only 16 bytes"):
        recover_cbc_key_from_iv(ShortLeakOracle(), bytes(16))


def test_cut_and_paste_cannot_replace_past_suffix():
    with pytest.raises(BrokenOracle, match="17-byte suffix"):
        ecb_cut_and_paste(ProfileOracle(), b"admin", 18)


# -----------------------------
# Bit-flipping
# -----------------------------
def test_scenario_b_cbc_cookie_forgery():
    oracle = CookieOracle(Mode.CBC)
    forged = cbc_bitflip_append(oracle, b";admin=true;")
    cookies = oracle.decrypt_cookies(forged)
    assert cookies[-1] == ("admin", "true")
    assert oracle.is_admin(forged)


def test_cookie_oracle_quotes_metacharacters():
    oracle = CookieOracle(Mode.CBC)
    ciphertext = oracle.encrypt(b";admin=true;")
    assert not oracle.is_admin(ciphertext)
    assert ("userdata", ";admin=true;") in oracle.decrypt_cookies(ciphertext)


def test_cbc_bitflip_inject_after_prefix():
    oracle = CookieOracle(Mode.CBC)
    prefix_size, suffix_size = detect_prefix_and_suffix_sizes(oracle, 16, FILLER, FILLER ^ 1)
    assert (prefix_size, suffix_size) == (32, 42)
    forged = cbc_bitflip_inject(oracle, b";admin=true;", 16, prefix_size)
    assert oracle.is_admin(forged)


def test_cbc_bitflip_append_rejects_long_payload():
    with pytest.raises(ValueError):
        cbc_bitflip_append(CookieOracle(Mode.CBC), b"A" * 16)


def test_flip_block_targets_next_block():
    key = generate_key(KeySize.AES128)
    iv = generate_iv()
    context = EncryptionContext(key, mode=Mode.CBC, padding=PaddingScheme.NONE, iv=iv)
    ciphertext = context.encrypt(b"A" * 16 + b"B" * 16 + b"C" * 16)
    forged = flip_block(ciphertext, 2, b"CCCC", b"DDDD")
    plaintext = context.decrypt(forged)
    assert plaintext[:16] == b"A" * 16
    assert plaintext[32:] == b"DDDD" + b"C" * 12


@pytest.mark.parametrize("block_index", [0, 3])
def test_flip_block_rejects_bad_index(block_index):
    with pytest.raises(InvalidOffset):
        flip_block(bytes(48), block_index, b"a", b"b")


def test_ctr_cookie_forgery():
    oracle = CookieOracle(Mode.CTR)
    forged = ctr_bitflip_inject(oracle, b";admin=true;")
    assert len(forged) == len(oracle.encrypt(b"x" * 12))
    assert oracle.is_admin(forged)


# -----------------------------
# Keystream and key recovery
# -----------------------------
@pytest.mark.parametrize("length", [1, 15, 16, 17, 138, 1000])
def test_scenario_c_ctr_edit_recovery(length):
    oracle = RandomAccessCtrOracle.random()
    plaintext = (SUFFIX * 8)[:length]
    assert recover_ctr_plaintext(oracle, oracle.encrypt(plaintext)) == plaintext


def test_scenario_d_key_as_iv():
    oracle = KeyAsIvOracle(b"YELLOW SUBMARINE")
    message = b"comment1=cooking%20MCs;userdata=scenario-d;comment2=%20like%20a%20pound%20of%20bacon"
    ciphertext = oracle.encrypt(message)
    key = recover_cbc_key_from_iv(oracle, ciphertext)
    assert key == b"YELLOW SUBMARINE"
    assert KeyAsIvOracle.verify_decrypt(key, ciphertext) == message


def test_key_as_iv_random_key():
    oracle = KeyAsIvOracle()
    ciphertext = oracle.encrypt(b"sixteen byte msg")
    key = recover_cbc_key_from_iv(oracle, ciphertext)
    assert oracle.decrypt(ciphertext) == KeyAsIvOracle.verify_decrypt(key, ciphertext)


class SilentOracle:
    def decrypt(self, ciphertext):
        return b""


class PaddingOnlyOracle:
    def decrypt(self, ciphertext):
        raise InvalidPaddingByte(0, 0, 1)


@pytest.mark.parametrize("oracle", [SilentOracle(), PaddingOnlyOracle()])
def test_key_recovery_gives_up(oracle):
    with pytest.raises(BrokenOracle):
        recover_cbc_key_from_iv(oracle, bytes(16), AttackParams(max_key_recovery_attempts=4))


# -----------------------------
# Cut-and-paste
# -----------------------------
def test_ecb_cut_and_paste_admin_profile():
    oracle = ProfileOracle()
    forged = ecb_cut_and_paste(oracle, b"admin", len(b"user"))
    assert oracle.decrypt_to_profile(forged) == {"email": "x" * 29, "uid": "10", "role": "admin"}


def test_cut_and_paste_needs_ecb():
    with pytest.raises(BrokenOracle):
        ecb_cut_and_paste(CookieOracle(Mode.CBC), b"admin", 4)
