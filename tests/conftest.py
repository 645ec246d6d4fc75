# tests/conftest.py
import io
import os
import sys

import pytest

# Add project root to sys.path so `lc3vm` is importable without installing
ROOT = os.path.dirname(os.path.dirname(__file__))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from lc3vm.console import BufferedKeyboard
from lc3vm.lc3 import LC3


@pytest.fixture
def keyboard():
    return BufferedKeyboard()

@pytest.fixture
def lc3(keyboard):
    """A machine with a scripted keyboard, writing into a StringIO."""
    return LC3(keyboard=keyboard, output=io.StringIO())

@pytest.fixture
def step_with(lc3):
    """Execute one instruction placed at `pc`."""
    def step_with(instruction, pc=0x3000):
        lc3.memory.write(pc, instruction)
        lc3.set_pc(pc)
        lc3.step()
        return lc3
    return step_with

@pytest.fixture
def run_image(lc3):
    """Load words at x3000, run until HALT and return the output."""
    def run_image(*words):
        lc3.load_words(0x3000, list(words))
        lc3.run()
        return lc3.output.getvalue()
    return run_image
