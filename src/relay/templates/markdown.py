from __future__ import annotations

import re

from bs4 import BeautifulSoup

_SPACES = re.compile(r"[ \t\r\f\v]+")
_BLANK_LINES = re.compile(r"\n{3,}")

_HEADINGS = ["h1", "h2", "h3", "h4", "h5", "h6"]
_BLOCKS = ["p", "div", "ul", "ol", "blockquote", "section", "article"]


def truncate_text(value: str, limit: int, suffix: str = "...") -> str:
    if len(value) <= limit:
        return value
    if limit <= len(suffix):
        return value[:limit]
    return value[: limit - len(suffix)].rstrip() + suffix


def clean_text(html: str | None) -> str:
    if not html:
        return ""
    text = BeautifulSoup(html, "lxml").get_text(" ")
    return " ".join(text.split())


def html_to_markdown(html: str | None) -> str:
    """Convert the small HTML subset found in blog posts and mails to Discord Markdown."""
    if not html or not html.strip():
        return ""

    soup = BeautifulSoup(html, "lxml")
    for tag in soup.find_all(["script", "style"]):
        tag.decompose()
    for tag in soup.find_all("br"):
        tag.replace_with("\n")
    for tag in soup.find_all(["strong", "b"]):
        tag.replace_with(f"**{tag.get_text()}**")
    for tag in soup.find_all(["em", "i"]):
        tag.replace_with(f"*{tag.get_text()}*")
    for tag in soup.find_all("code"):
        tag.replace_with(f"`{tag.get_text()}`")
    for tag in soup.find_all("a"):
        href = tag.get("href")
        text = tag.get_text()
        tag.replace_with(f"[{text}]({href})" if href else text)
    for tag in soup.find_all(_HEADINGS):
        level = int(tag.name[1])
        tag.replace_with(f"\n\n{'#' * level} {tag.get_text().strip()}\n\n")
    for tag in soup.find_all("li"):
        tag.replace_with(f"\n- {tag.get_text().strip()}")
    for tag in soup.find_all(_BLOCKS):
        tag.insert_after("\n\n")
        tag.unwrap()

    lines = [_SPACES.sub(" ", line).strip() for line in soup.get_text().split("\n")]
    return _BLANK_LINES.sub("\n\n", "\n".join(lines)).strip()
