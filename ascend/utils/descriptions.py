"""Helpers for descriptions stored as either markdown or HTML."""

import re

_HTML_TAG = re.compile(r"<[a-z][\s\S]*?>", re.IGNORECASE)
_BULLET = re.compile(r"^\s*[-*+]\s+(.*)")
_NUMBERED = re.compile(r"^\s*\d+\.\s+(.*)")

_BOLD_STARS = re.compile(r"\*\*(.+?)\*\*")
_BOLD_UNDERSCORES = re.compile(r"__(.+?)__")
_ITALIC_STAR = re.compile(r"(?<!\*)\*(?!\*)(.+?)(?<!\*)\*(?!\*)")
_ITALIC_UNDERSCORE = re.compile(r"(?<!_)_(?!_)(.+?)(?<!_)_(?!_)")
_LINK = re.compile(r"\[([^\]]+)\]\(([^)]+)\)")


def is_html_content(text: str) -> bool:
    """True when the text contains at least one HTML tag."""
    return bool(_HTML_TAG.search(text or ""))


def _inline_markdown(text: str) -> str:
    text = _BOLD_STARS.sub(r"<strong>\1</strong>", text)
    text = _BOLD_UNDERSCORES.sub(r"<strong>\1</strong>", text)
    text = _ITALIC_STAR.sub(r"<em>\1</em>", text)
    text = _ITALIC_UNDERSCORE.sub(r"<em>\1</em>", text)
    return _LINK.sub(r'<a href="\2" target="_blank" rel="noopener noreferrer">\1</a>', text)


def markdown_to_html(md: str) -> str:
    """
    Convert basic markdown (lists, bold, italic, links, paragraphs) to HTML.

    Text that already contains HTML is returned unchanged.
    """
    if not md or not md.strip():
        return ""
    if is_html_content(md):
        return md

    parts: list[str] = []
    open_list = None  # "ul", "ol" or None

    def close_list() -> None:
        nonlocal open_list
        if open_list:
            parts.append(f"</{open_list}>")
            open_list = None

    for line in md.split("\n"):
        bullet = _BULLET.match(line)
        numbered = None if bullet else _NUMBERED.match(line)
        match, tag = (bullet, "ul") if bullet else (numbered, "ol")

        if match:
            if open_list != tag:
                close_list()
                parts.append(f"<{tag}>")
                open_list = tag
            parts.append(f"<li>{_inline_markdown(match.group(1))}</li>")
            continue

        close_list()
        if line.strip():
            parts.append(f"<p>{_inline_markdown(line)}</p>")

    close_list()
    return "".join(parts)


def strip_formatting(text: str) -> str:
    """Reduce markdown or HTML to a single line of plain text for previews."""
    if not text:
        return ""

    if is_html_content(text):
        text = re.sub(r"<[^>]+>", " ", text)
    else:
        text = _BOLD_STARS.sub(r"\1", text)
        text = _BOLD_UNDERSCORES.sub(r"\1", text)
        text = _ITALIC_STAR.sub(r"\1", text)
        text = _ITALIC_UNDERSCORE.sub(r"\1", text)
        text = re.sub(r"\[([^\]]+)\]\([^)]+\)", r"\1", text)
        text = re.sub(r"^\s*[-*+]\s+", "", text, flags=re.MULTILINE)
        text = re.sub(r"^\s*\d+\.\s+", "", text, flags=re.MULTILINE)

    return re.sub(r"\s+", " ", text).strip()
