"""
Program images.

An object image is a sequence of big-endian 16-bit words. The first word
is the load origin; the remaining words are placed consecutively from
there. The kernel also accepts the same image written as hex words
(x3000 x1261 xF025 ...).
"""

from array import array
import sys


def is_composed_of(s, letters):
    return len(s) > 0 and sum([s.count(letter) for letter in letters]) == len(s)

def is_hex(s):
    if len(s) > 1 and s[0] in "xX":
        return is_composed_of(s[1:].upper(), "0123456789ABCDEF")
    return False


def read_image_file(fp, memory):
    """
    Read an object image from the binary file fp into memory. A trailing
    odd byte is ignored. Returns (origin, number of words placed).
    """
    data = fp.read()
    if len(data) < 2:
        raise ValueError("image has no origin word")
    words = array('H')
    words.frombytes(data[:len(data) - len(data) % 2])
    if sys.byteorder == "little":
        words.byteswap()
    origin = words[0]
    count = memory.load(origin, words[1:])
    return origin, count

def read_image(filename, memory):
    with open(filename, 'rb') as fp:
        return read_image_file(fp, memory)

def write_image(fp, origin, words):
    image = array('H', [origin] + [word & 0xFFFF for word in words])
    if sys.byteorder == "little":
        image.byteswap()
    fp.write(image.tobytes())

def parse_hex_image(text):
    """
    Parse hex words, one or more per line, with ; comments. The first
    word is the origin. Returns (origin, words).
    """
    words = []
    for line_count, line in enumerate(text.splitlines(), 1):
        line = line.split(';')[0]
        for word in line.replace(',', ' ').split():
            if not is_hex(word) or len(word) > 5:
                raise ValueError('Not a hex word: "%s", line #: %s' % (word, line_count))
            words.append(int(word[1:], 16))
    if not words:
        raise ValueError("image has no origin word")
    return words[0], words[1:]
