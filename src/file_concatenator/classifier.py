"""Text/binary classification of candidate files.

Only files classified as text ever enter the working set. The decision is a pure
function of the file name, its declared media type and a small content sample.
"""

from __future__ import annotations

import codecs
import re

from file_concatenator.config import SAMPLE_BYTES, TEXT_EXTENSIONS, TEXT_MEDIA_TYPES, FileKind

# Control characters that mark a sample as binary. Tab, LF, VT, FF and CR are allowed.
_DISALLOWED_CONTROL = re.compile(r"[\x00-\x08\x0e-\x1f\x7f]")


def file_extension(name: str) -> str:
    """Return the lower-cased text after the final ``.`` of ``name``, or "" when there is none."""
    base = name.replace("\\", "/").rsplit("/", 1)[-1]
    if "." not in base:
        return ""
    return base.rsplit(".", 1)[-1].lower()


def has_text_extension(name: str) -> bool:
    ext = file_extension(name)
    return bool(ext) and ext in TEXT_EXTENSIONS


def is_text_media_type(media_type: str | None) -> bool:
    mt = (media_type or "").strip().lower()
    return mt.startswith("text/") or mt in TEXT_MEDIA_TYPES


def decode_sample(sample: bytes | str) -> str:
    """Decode up to ``SAMPLE_BYTES`` of a content sample as UTF-8.

    A multi-byte sequence cut at the sample boundary is tolerated, any other invalid
    byte sequence raises ``UnicodeDecodeError``.

    Args:
        sample (bytes | str): raw bytes read from the file, or already-decoded text

    Returns:
        str: the decoded sample
    """
    if isinstance(sample, str):
        return sample[:SAMPLE_BYTES]
    decoder = codecs.getincrementaldecoder("utf-8")(errors="strict")
    return decoder.decode(bytes(sample[:SAMPLE_BYTES]), final=False)


def sample_looks_textual(sample: bytes | str) -> bool:
    return _DISALLOWED_CONTROL.search(decode_sample(sample)) is None


def classify(
    name: str,
    declared_media_type: str | None,
    content_sample: bytes | str | None,
) -> FileKind:
    """Decide whether a candidate file is text or binary.

    Decision order, first match wins:

    1. the extension is in ``TEXT_EXTENSIONS``;
    2. the declared media type is ``text/*`` or a known textual application type;
    3. the first ``SAMPLE_BYTES`` of content contain no disallowed control characters.

    A missing or undecodable sample classifies as binary.

    Args:
        name (str): the file name (a path is accepted, only its last segment is used)
        declared_media_type (str | None): the media type reported by the source, may be empty
        content_sample (bytes | str | None): leading content of the file, or None if unavailable

    Returns:
        FileKind: ``FileKind.TEXT`` or ``FileKind.BINARY``
    """
    if has_text_extension(name):
        return FileKind.TEXT
    if is_text_media_type(declared_media_type):
        return FileKind.TEXT
    if content_sample is None:
        return FileKind.BINARY
    try:
        textual = sample_looks_textual(content_sample)
    except (UnicodeDecodeError, TypeError, ValueError):
        return FileKind.BINARY
    return FileKind.TEXT if textual else FileKind.BINARY


def is_text_file(
    name: str,
    declared_media_type: str | None,
    content_sample: bytes | str | None,
) -> bool:
    return classify(name, declared_media_type, content_sample) is FileKind.TEXT
