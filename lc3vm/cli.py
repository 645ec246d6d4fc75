"""
Command line: load one or more object images and run them on the
terminal until HALT.

    lc3vm [--trace] [--quiet] IMAGE [IMAGE ...]
"""

import argparse
import io
import sys

from .console import RawTerminal, TerminalKeyboard
from .lc3 import LC3

EXIT_LOAD_FAILED = 1
EXIT_USAGE = 2
EXIT_INTERRUPTED = 254 # -2 as an exit status byte


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="lc3vm", description="Run LC-3 object images")
    p.add_argument("images", nargs="*", metavar="IMAGE",
                   help="Big-endian object image; later images overlay earlier ones")
    p.add_argument("-t", "--trace", action="store_true",
                   help="Print every instruction executed")
    p.add_argument("-q", "--quiet", action="store_true",
                   help="Do not warn about invalid TRAP vectors")
    return p


def byte_stream(stream):
    """
    Text stream over stream's binary buffer in which every character
    0-255 is written as that one byte, as putc() would.
    """
    stream.flush()
    return io.TextIOWrapper(stream.buffer, encoding="latin-1",
                            errors="replace", write_through=True)


def main(argv=None, stdin=None, stdout=None) -> int:
    args = build_parser().parse_args(argv)
    stdin = stdin if stdin is not None else sys.stdin
    if stdout is not None:
        return run(args, stdin, stdout)
    stdout = byte_stream(sys.stdout)
    try:
        return run(args, stdin, stdout)
    finally:
        stdout.flush()
        # leave sys.stdout's buffer open
        stdout.detach()


def run(args, stdin, stdout) -> int:
    if not args.images:
        stdout.write("lc3vm [image-file] ...\n")
        return EXIT_USAGE

    lc3 = LC3(keyboard=TerminalKeyboard(stdin), output=stdout)
    lc3.debug = args.trace
    lc3.warn = not args.quiet
    for filename in args.images:
        try:
            lc3.load_image(filename)
        except (IOError, ValueError):
            stdout.write("failed to load image: %s\n" % filename)
            return EXIT_LOAD_FAILED

    terminal = RawTerminal(stdin)
    try:
        with terminal:
            lc3.run()
    except KeyboardInterrupt:
        terminal.restore()
        stdout.write("\n")
        stdout.flush()
        return EXIT_INTERRUPTED
    return 0


if __name__ == "__main__":
    sys.exit(main())
