import pytest

from blockbreak.errors import (
    InvalidBlockLength, InvalidPaddingByte, InvalidPaddingLength, Pkcs7Error, ZeroBlockSize
)
from blockbreak.utils.padding import (pad_pkcs7, unpad_pkcs7)


def test_pad_yellow_submarine_to_twenty():
    assert pad_pkcs7(b"YELLOW SUBMARINE", 20) == b"YELLOW SUBMARINE\x04\x04\x04\x04"


def test_pad_aligned_input_gets_full_block():
    assert pad_pkcs7(b"YELLOW SUBMARINE", 16) == b"YELLOW SUBMARINE" + b"\x10" * 16


def test_pad_empty_input_stays_empty():
    assert pad_pkcs7(b"", 16) == b""
    assert unpad_pkcs7(b"", 16) == b""


@pytest.mark.parametrize("block_size", [1, 8, 16, 255])
@pytest.mark.parametrize("length", [1, 7, 16, 33])
def test_pad_then_unpad_restores_input(block_size, length):
    data = bytes(range(length))
    padded = pad_pkcs7(data, block_size)
    assert len(padded) % block_size == 0
    assert len(padded) > len(data)
    assert unpad_pkcs7(padded, block_size) == data


def test_unpad_ice_ice_baby():
    assert unpad_pkcs7(b"ICE ICE BABY\x04\x04\x04\x04", 16) == b"ICE ICE BABY"


def test_unpad_rejects_padding_that_overruns_into_text():
    with pytest.raises(InvalidPaddingByte) as excinfo:
        unpad_pkcs7(b"ICE ICE BABY\x05\x05\x05\x05", 16)
    assert excinfo.value.offset == 11
    assert excinfo.value.found == ord("Y")
    assert excinfo.value.expected == 5


def test_unpad_rejects_mixed_padding_bytes():
    with pytest.raises(InvalidPaddingByte) as excinfo:
        unpad_pkcs7(b"ICE ICE BABY\x01\x02\x03\x04", 16)
    assert excinfo.value.offset == 12
    assert excinfo.value.found == 1


def test_unpad_accepts_a_whole_block_of_padding():
    assert unpad_pkcs7(b"\x10" * 16, 16) == b""


@pytest.mark.parametrize("final", [0, 17])
def test_unpad_rejects_bad_padding_length(final):
    with pytest.raises(InvalidPaddingLength) as excinfo:
        unpad_pkcs7(b"A" * 15 + bytes([final]), 16)
    assert excinfo.value.was == final


def test_unpad_rejects_unaligned_input():
    with pytest.raises(InvalidBlockLength) as excinfo:
        unpad_pkcs7(b"A" * 15, 16)
    assert (excinfo.value.was, excinfo.value.expected) == (15, 16)


@pytest.mark.parametrize("block_size", [0, 256])
def test_block_size_outside_byte_range(block_size):
    with pytest.raises(ZeroBlockSize):
        pad_pkcs7(b"abc", block_size)
    with pytest.raises(ZeroBlockSize):
        unpad_pkcs7(b"abc", block_size)


def test_padding_errors_share_a_base_class():
    with pytest.raises(Pkcs7Error):
        unpad_pkcs7(b"ICE ICE BABY\x05\x05\x05\x05", 16)
    with pytest.raises(ValueError):
        unpad_pkcs7(b"A" * 15, 16)
