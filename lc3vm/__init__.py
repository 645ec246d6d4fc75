from ._version import __version__
from .lc3 import LC3, Memory, RegisterFile, Opcode, sext
from .console import BufferedKeyboard, TerminalKeyboard, RawTerminal
