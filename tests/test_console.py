# tests/test_console.py
import io
import os

import pytest

from lc3vm.console import BufferedKeyboard, RawTerminal, TerminalKeyboard
from lc3vm.lc3 import EOF_CHAR, Memory, MR_KBDR, MR_KBSR

if os.name != "nt":
    import pty
    import termios


def test_buffered_keyboard_order():
    keyboard = BufferedKeyboard("ab")
    assert keyboard.key_available()
    assert keyboard.read_key() == ord("a")
    assert keyboard.read_key() == ord("b")
    assert not keyboard.key_available()
    assert keyboard.read_key() == EOF_CHAR


def test_refill_single_character():
    lines = iter(["q"])
    keyboard = BufferedKeyboard(refill=lambda: next(lines))
    assert not keyboard.key_available()
    assert keyboard.read_key() == ord("q")
    assert not keyboard.key_available()


def test_refill_line_gets_newline():
    lines = iter(["hi", ""])
    keyboard = BufferedKeyboard(refill=lambda: next(lines))
    assert [keyboard.read_key() for _ in range(3)] == [ord("h"), ord("i"), 10]
    assert keyboard.read_key() == 10


def test_clear():
    keyboard = BufferedKeyboard("abc")
    keyboard.clear()
    assert not keyboard.key_available()


def test_raw_terminal_ignores_non_tty():
    stream = io.StringIO()
    with RawTerminal(stream) as terminal:
        assert terminal.tattr is None


posix_only = pytest.mark.skipif(os.name == "nt", reason="needs pipes and ptys")


@posix_only
def test_terminal_keyboard_over_a_pipe():
    read_fd, write_fd = os.pipe()
    with os.fdopen(read_fd, "rb", buffering=0) as reader:
        keyboard = TerminalKeyboard(reader)
        assert not keyboard.key_available()
        os.write(write_fd, b"k")
        assert keyboard.key_available()
        assert keyboard.read_key() == ord("k")
        assert not keyboard.key_available()
        os.close(write_fd)
        assert keyboard.read_key() == EOF_CHAR


@posix_only
def test_terminal_keyboard_feeds_memory_mapped_registers():
    read_fd, write_fd = os.pipe()
    with os.fdopen(read_fd, "rb", buffering=0) as reader:
        memory = Memory(TerminalKeyboard(reader))
        assert memory.read(MR_KBSR) == 0
        os.write(write_fd, b"\xe9")
        assert memory.read(MR_KBSR) == 0x8000
        assert memory.read(MR_KBDR) == 0xE9
    os.close(write_fd)


@posix_only
def test_raw_terminal_sets_cbreak_and_restores():
    master, slave = pty.openpty()
    try:
        with os.fdopen(slave, "rb", buffering=0) as stream:
            before = termios.tcgetattr(slave)
            with RawTerminal(stream) as terminal:
                assert terminal.tattr is not None
                lflag = termios.tcgetattr(slave)[3]
                assert not lflag & termios.ICANON
                assert not lflag & termios.ECHO
            assert termios.tcgetattr(slave) == before
    finally:
        os.close(master)


@posix_only
def test_raw_terminal_restores_on_interrupt():
    master, slave = pty.openpty()
    try:
        with os.fdopen(slave, "rb", buffering=0) as stream:
            before = termios.tcgetattr(slave)
            with pytest.raises(KeyboardInterrupt):
                with RawTerminal(stream):
                    raise KeyboardInterrupt
            assert termios.tcgetattr(slave) == before
    finally:
        os.close(master)
