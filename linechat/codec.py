from __future__ import annotations

from .constants import BOM, LINE_TERMINATOR


def encode_line(text: str, encoding: str) -> bytes:
    return (text + LINE_TERMINATOR).encode(encoding)


def preamble(encoding: str) -> bytes:
    return BOM.encode(encoding)


def strip_bom(text: str) -> str:
    return text[1:] if text.startswith(BOM) else text


def strip_terminator(text: str) -> str:
    # Reader translates \r\n and \r to \n; a bare line at EOF has none.
    if text.endswith("\n"):
        text = text[:-1]
    if text.endswith("\r"):
        text = text[:-1]
    return text
