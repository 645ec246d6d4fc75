# tests/test_cli.py
import io
import sys

from lc3vm import cli
from lc3vm.image import write_image


def make_image(tmp_path, name, origin, words):
    path = tmp_path / name
    with open(str(path), "wb") as fp:
        write_image(fp, origin, words)
    return str(path)


def test_usage_without_images():
    out = io.StringIO()
    assert cli.main([], stdin=io.StringIO(), stdout=out) == cli.EXIT_USAGE
    assert "lc3vm [image-file]" in out.getvalue()


def test_failed_load(tmp_path):
    out = io.StringIO()
    missing = str(tmp_path / "nope.obj")
    assert cli.main([missing], stdin=io.StringIO(), stdout=out) == cli.EXIT_LOAD_FAILED
    assert out.getvalue() == "failed to load image: %s\n" % missing


def test_runs_image_until_halt(tmp_path):
    image = make_image(tmp_path, "hi.obj", 0x3000, [
        0xE002,  # LEA R0, msg
        0xF022,  # PUTS
        0xF025,  # HALT
        0x004F, 0x004B, 0x0000,
    ])
    out = io.StringIO()
    assert cli.main([image], stdin=io.StringIO(), stdout=out) == 0
    assert out.getvalue() == "OKHALT\n"


def test_later_images_overlay_earlier(tmp_path):
    first = make_image(tmp_path, "a.obj", 0x3000, [0x1021, 0x1021, 0xF025])
    second = make_image(tmp_path, "b.obj", 0x3001, [0xF025])
    out = io.StringIO()
    assert cli.main([first, second], stdin=io.StringIO(), stdout=out) == 0
    assert out.getvalue() == "HALT\n"


def test_interrupt(tmp_path, monkeypatch):
    image = make_image(tmp_path, "loop.obj", 0x3000, [0x0FFF])  # BRnzp #-1

    def interrupted(self):
        raise KeyboardInterrupt

    monkeypatch.setattr(cli.LC3, "run", interrupted)
    out = io.StringIO()
    assert cli.main([image], stdin=io.StringIO(), stdout=out) == cli.EXIT_INTERRUPTED
    assert out.getvalue() == "\n"


def test_output_bytes_are_written_unencoded(tmp_path, monkeypatch):
    image = make_image(tmp_path, "byte.obj", 0x3000, [
        0x5020,  # AND R0, R0, #0
        0x1037,  # ADD R0, R0, #-9
        0xF021,  # OUT
        0xF025,  # HALT
    ])
    raw = io.BytesIO()
    monkeypatch.setattr(sys, "stdout", io.TextIOWrapper(raw, encoding="utf-8"))
    assert cli.main([image], stdin=io.StringIO()) == 0
    assert raw.getvalue() == b"\xf7HALT\n"
    assert not raw.closed
