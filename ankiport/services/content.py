"""
Note content cleanup.

Decodes the HTML entities Anki leaves in note fields and points embedded
images at their uploaded public URLs.
"""

import logging
import re

from ankiport.models.anki import SourceNote

logger = logging.getLogger(__name__)

# Named entities seen in Anki exports. `&amp;` is decoded last so that an
# escaped entity such as `&amp;lt;` decodes to the literal text `&lt;`.
HTML_ENTITIES: dict[str, str] = {
    "&nbsp;": " ",
    "&lt;": "<",
    "&gt;": ">",
    "&quot;": '"',
    "&#39;": "'",
    "&apos;": "'",
    "&cent;": "¢",
    "&pound;": "£",
    "&yen;": "¥",
    "&euro;": "€",
    "&copy;": "©",
    "&reg;": "®",
    "&amp;": "&",
}

DECIMAL_REF_PATTERN = re.compile(r"&#(\d+);")
HEX_REF_PATTERN = re.compile(r"&#[xX]([0-9A-Fa-f]+);")

# Groups: (attributes before src, src value, attributes after src)
IMG_SRC_PATTERN = re.compile(
    r"""<img([^>]*?)src=["']?([^"'>\s]+)["']?([^>]*?)>""",
    re.IGNORECASE,
)

MAX_CODE_POINT = 0x10FFFF

# UTF-16 surrogate halves are not characters and cannot be stored as UTF-8
SURROGATE_RANGE = range(0xD800, 0xE000)


def _char_from_code(code: int, original: str) -> str:
    if 0 < code <= MAX_CODE_POINT and code not in SURROGATE_RANGE:
        return chr(code)
    return original


def decode_html_entities(text: str) -> str:
    """Decode the fixed entity table plus decimal and hex character references."""
    if not text:
        return text

    decoded = text
    for entity, char in HTML_ENTITIES.items():
        decoded = decoded.replace(entity, char)

    decoded = DECIMAL_REF_PATTERN.sub(
        lambda m: _char_from_code(int(m.group(1)), m.group(0)), decoded
    )
    decoded = HEX_REF_PATTERN.sub(
        lambda m: _char_from_code(int(m.group(1), 16), m.group(0)), decoded
    )
    return decoded


def rewrite_media_urls(html: str, url_map: dict[str, str]) -> str:
    """
    Replace `<img src>` values that name an uploaded file with its URL.

    References with no uploaded file are left untouched.
    """
    if not html or not url_map:
        return html

    def replace(match: re.Match[str]) -> str:
        before, src, after = match.groups()
        public_url = url_map.get(src)
        if public_url is None:
            logger.debug("No media file found for: %s", src)
            return match.group(0)
        return f'<img{before}src="{public_url}"{after}>'

    return IMG_SRC_PATTERN.sub(replace, html)


def prepare_note_content(note: SourceNote, url_map: dict[str, str]) -> tuple[str, str]:
    """
    Front and back HTML for a note.

    The first field is the front, the second the back; extra fields are
    ignored.
    """
    fields = note.split_fields()
    front = fields[0] if fields else ""
    back = fields[1] if len(fields) > 1 else ""
    front = rewrite_media_urls(decode_html_entities(front), url_map)
    back = rewrite_media_urls(decode_html_entities(back), url_map)
    return front, back
