"""Magic-byte content type detection.

Implements the signature table of the WHATWG MIME Sniffing standard
(https://mimesniff.spec.whatwg.org/) that web servers use to classify an
upload from its leading bytes instead of trusting the declared
``Content-Type``. At most ``SNIFF_LEN`` bytes are ever considered.
"""
from __future__ import annotations

import logging
import struct
from typing import BinaryIO, Callable, List, Optional

logger = logging.getLogger(__name__)

SNIFF_LEN = 512
DEFAULT_CONTENT_TYPE = "application/octet-stream"

_WHITESPACE = b"\t\n\x0c\r "
_TAG_TERMINATORS = (ord(" "), ord(">"))

Matcher = Callable[[bytes, int], Optional[str]]


def _html(tag: bytes) -> Matcher:
    def match(data: bytes, first_non_ws: int) -> Optional[str]:
        data = data[first_non_ws:]
        if len(data) < len(tag) + 1:
            return None
        for i, pattern_byte in enumerate(tag):
            data_byte = data[i]
            if ord("A") <= pattern_byte <= ord("Z"):
                data_byte &= 0xDF
            if data_byte != pattern_byte:
                return None
        if data[len(tag)] not in _TAG_TERMINATORS:
            return None
        return "text/html; charset=utf-8"

    return match


def _masked(mask: bytes, pattern: bytes, content_type: str, skip_ws: bool = False) -> Matcher:
    assert len(mask) == len(pattern)

    def match(data: bytes, first_non_ws: int) -> Optional[str]:
        if skip_ws:
            data = data[first_non_ws:]
        if len(data) < len(pattern):
            return None
        for i, pattern_byte in enumerate(pattern):
            if data[i] & mask[i] != pattern_byte:
                return None
        return content_type

    return match


def _exact(signature: bytes, content_type: str) -> Matcher:
    def match(data: bytes, first_non_ws: int) -> Optional[str]:
        return content_type if data.startswith(signature) else None

    return match


def _mp4(data: bytes, first_non_ws: int) -> Optional[str]:
    if len(data) < 12:
        return None
    (box_size,) = struct.unpack(">I", data[:4])
    if len(data) < box_size or box_size % 4 != 0:
        return None
    if data[4:8] != b"ftyp":
        return None
    for start in range(8, box_size, 4):
        if start == 12:
            # minor version, not a brand
            continue
        if data[start:start + 3] == b"mp4":
            return "video/mp4"
    return None


def _text(data: bytes, first_non_ws: int) -> Optional[str]:
    for byte in data[first_non_ws:]:
        if (
            byte <= 0x08
            or byte == 0x0B
            or 0x0E <= byte <= 0x1A
            or 0x1C <= byte <= 0x1F
        ):
            return None
    return "text/plain; charset=utf-8"


_SIGNATURES: List[Matcher] = [
    _html(b"<!DOCTYPE HTML"),
    _html(b"<HTML"),
    _html(b"<HEAD"),
    _html(b"<SCRIPT"),
    _html(b"<IFRAME"),
    _html(b"<H1"),
    _html(b"<DIV"),
    _html(b"<FONT"),
    _html(b"<TABLE"),
    _html(b"<A"),
    _html(b"<STYLE"),
    _html(b"<TITLE"),
    _html(b"<B"),
    _html(b"<BODY"),
    _html(b"<BR"),
    _html(b"<P"),
    _html(b"<!--"),
    _masked(b"\xff\xff\xff\xff\xff", b"<?xml", "text/xml; charset=utf-8", skip_ws=True),
    _exact(b"%PDF-", "application/pdf"),
    _exact(b"%!PS-Adobe-", "application/postscript"),
    # byte order marks
    _masked(b"\xff\xff\x00\x00", b"\xfe\xff\x00\x00", "text/plain; charset=utf-16be"),
    _masked(b"\xff\xff\x00\x00", b"\xff\xfe\x00\x00", "text/plain; charset=utf-16le"),
    _masked(b"\xff\xff\xff\x00", b"\xef\xbb\xbf\x00", "text/plain; charset=utf-8"),
    # images
    _exact(b"\x00\x00\x01\x00", "image/x-icon"),
    _exact(b"\x00\x00\x02\x00", "image/x-icon"),
    _exact(b"BM", "image/bmp"),
    _exact(b"GIF87a", "image/gif"),
    _exact(b"GIF89a", "image/gif"),
    _masked(
        b"\xff\xff\xff\xff\x00\x00\x00\x00\xff\xff\xff\xff\xff\xff",
        b"RIFF\x00\x00\x00\x00WEBPVP",
        "image/webp",
    ),
    _exact(b"\x89PNG\x0d\x0a\x1a\x0a", "image/png"),
    _exact(b"\xff\xd8\xff", "image/jpeg"),
    # audio and video
    _masked(b"\xff\xff\xff\xff", b".snd", "audio/basic"),
    _masked(
        b"\xff\xff\xff\xff\x00\x00\x00\x00\xff\xff\xff\xff",
        b"FORM\x00\x00\x00\x00AIFF",
        "audio/aiff",
    ),
    _masked(b"\xff\xff\xff", b"ID3", "audio/mpeg"),
    _masked(b"\xff\xff\xff\xff\xff", b"OggS\x00", "application/ogg"),
    _masked(b"\xff" * 8, b"MThd\x00\x00\x00\x06", "audio/midi"),
    _masked(
        b"\xff\xff\xff\xff\x00\x00\x00\x00\xff\xff\xff\xff",
        b"RIFF\x00\x00\x00\x00AVI ",
        "video/avi",
    ),
    _masked(
        b"\xff\xff\xff\xff\x00\x00\x00\x00\xff\xff\xff\xff",
        b"RIFF\x00\x00\x00\x00WAVE",
        "audio/wave",
    ),
    _mp4,
    _exact(b"\x1a\x45\xdf\xa3", "video/webm"),
    # fonts
    _masked(b"\x00" * 34 + b"\xff\xff", b"\x00" * 34 + b"LP", "application/vnd.ms-fontobject"),
    _exact(b"\x00\x01\x00\x00", "font/ttf"),
    _exact(b"OTTO", "font/otf"),
    _exact(b"ttcf", "font/collection"),
    _exact(b"wOFF", "font/woff"),
    _exact(b"wOF2", "font/woff2"),
    # archives
    _exact(b"\x1f\x8b\x08", "application/x-gzip"),
    _exact(b"PK\x03\x04", "application/zip"),
    _exact(b"Rar!\x1a\x07\x00", "application/x-rar-compressed"),
    _exact(b"Rar!\x1a\x07\x01\x00", "application/x-rar-compressed"),
    _exact(b"7z\xbc\xaf\x27\x1c", "application/x-7z-compressed"),
    _exact(b"\x00\x61\x73\x6d", "application/wasm"),
    # must stay last
    _text,
]


def detect_content_type(data: bytes) -> str:
    """Return the MIME type of ``data`` judged from its first 512 bytes.

    Always returns a value; ``application/octet-stream`` when nothing matches.
    """
    data = bytes(data[:SNIFF_LEN])
    first_non_ws = 0
    while first_non_ws < len(data) and data[first_non_ws] in _WHITESPACE:
        first_non_ws += 1

    for match in _SIGNATURES:
        content_type = match(data, first_non_ws)
        if content_type:
            return content_type
    return DEFAULT_CONTENT_TYPE


def sniff(stream: BinaryIO) -> str:
    """Detect the content type of a seekable stream without consuming it.

    Reads at most ``SNIFF_LEN`` bytes from the current position and seeks
    back to that position afterwards, so a following copy sees every byte.
    Read and seek failures propagate as ``OSError``.
    """
    position = stream.tell()
    head = stream.read(SNIFF_LEN)
    stream.seek(position)
    content_type = detect_content_type(head or b"")
    logger.debug("Sniffed %d bytes as %s", len(head or b""), content_type)
    return content_type
