"""
Host console: keyboards for the memory-mapped keyboard registers and the
input traps, and raw terminal mode for interactive runs.

A keyboard is any object with:

    key_available() -> bool    must not block
    read_key() -> int          blocks; EOF_CHAR at end of input
"""

import os
import sys

from .lc3 import EOF_CHAR

if os.name == "nt":
    import msvcrt
else:
    import select
    import termios
    import tty


class TerminalKeyboard(object):
    """ Keys straight from the process's standard input """
    def __init__(self, stream=None):
        self.stream = stream if stream is not None else sys.stdin

    def key_available(self):
        if os.name == "nt":
            return bool(msvcrt.kbhit())
        readable, _, _ = select.select([self.stream], [], [], 0)
        return len(readable) > 0

    def read_key(self):
        if os.name == "nt":
            return ord(msvcrt.getch())
        # unbuffered, so select() and read agree on what is pending
        data = os.read(self.stream.fileno(), 1)
        if not data:
            return EOF_CHAR
        return data[0]


class BufferedKeyboard(object):
    """
    Scripted keyboard. Characters queued with feed() are handed out in
    order. When a blocking read finds the queue empty and a refill
    callable was given (the kernel passes its raw_input), one line is
    requested: a single character is queued as typed, anything else is
    queued followed by a newline.
    """
    def __init__(self, text="", refill=None):
        self.char_buffer = []
        self.refill = refill
        self.feed(text)

    def feed(self, text):
        self.char_buffer.extend(ord(char) for char in text)

    def clear(self):
        self.char_buffer = []

    def key_available(self):
        return len(self.char_buffer) > 0

    def read_key(self):
        if len(self.char_buffer) == 0 and self.refill is not None:
            data = self.refill()
            data = data.replace("\\n", "\n")
            if len(data) == 1:
                self.feed(data) # single char mode
            else:
                self.feed(data + "\n")
        if len(self.char_buffer) == 0:
            return EOF_CHAR
        return self.char_buffer.pop(0)


class RawTerminal(object):
    """
    Context manager turning off line buffering and echo on a terminal
    for the duration of a run. Does nothing when the stream is not a tty.
    """
    def __init__(self, stream=None):
        self.stream = stream if stream is not None else sys.stdin
        self.tattr = None

    def __enter__(self):
        if os.name != "nt" and self.stream.isatty():
            self.tattr = termios.tcgetattr(self.stream)
            tty.setcbreak(self.stream.fileno(), termios.TCSANOW)
        return self

    def __exit__(self, type, value, trace):
        self.restore()

    def restore(self):
        if self.tattr is not None:
            termios.tcsetattr(self.stream, termios.TCSANOW, self.tattr)
            self.tattr = None
