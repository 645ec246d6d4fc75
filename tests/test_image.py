# tests/test_image.py
import io

import pytest

from lc3vm.image import read_image, read_image_file, write_image, parse_hex_image, is_hex
from lc3vm.lc3 import Memory


def test_read_big_endian_image():
    memory = Memory()
    data = bytes([0x30, 0x00, 0x12, 0x34, 0xF0, 0x25])
    assert read_image_file(io.BytesIO(data), memory) == (0x3000, 2)
    assert memory.read(0x3000) == 0x1234
    assert memory.read(0x3001) == 0xF025


def test_dangling_byte_is_ignored():
    memory = Memory()
    data = bytes([0x40, 0x00, 0xAB, 0xCD, 0xEE])
    assert read_image_file(io.BytesIO(data), memory) == (0x4000, 1)
    assert memory.read(0x4001) == 0


def test_words_past_end_of_memory_are_dropped():
    memory = Memory()
    data = bytes([0xFF, 0xFF, 0x00, 0x01, 0x00, 0x02])
    assert read_image_file(io.BytesIO(data), memory) == (0xFFFF, 1)
    assert memory.read(0xFFFF) == 1
    assert memory.read(0) == 0


def test_image_without_origin():
    with pytest.raises(ValueError):
        read_image_file(io.BytesIO(b"\x30"), Memory())


def test_write_then_read_image(tmp_path):
    path = tmp_path / "prog.obj"
    with open(str(path), "wb") as fp:
        write_image(fp, 0x3000, [0x1063, 0xF025])
    assert path.read_bytes() == bytes([0x30, 0x00, 0x10, 0x63, 0xF0, 0x25])
    memory = Memory()
    assert read_image(str(path), memory) == (0x3000, 2)
    assert memory.read(0x3000) == 0x1063


def test_missing_image_file(tmp_path):
    with pytest.raises(IOError):
        read_image(str(tmp_path / "missing.obj"), Memory())


def test_parse_hex_image():
    text = """
    x3000        ; origin
    x1063, xF025 ; ADD, HALT
    """
    assert parse_hex_image(text) == (0x3000, [0x1063, 0xF025])


def test_parse_hex_image_errors():
    with pytest.raises(ValueError):
        parse_hex_image("; nothing here")
    with pytest.raises(ValueError):
        parse_hex_image("x3000 ADD")
    with pytest.raises(ValueError):
        parse_hex_image("x3000 x12345")


def test_is_hex():
    assert is_hex("x3000")
    assert is_hex("xfe00")
    assert not is_hex("x")
    assert not is_hex("3000")
    assert not is_hex("xG000")
