"""Markdown analysis helpers used by the SEO audit and the finalize step.

Everything here is a single-pass regex scan over the raw Markdown. Code
fences are removed before headings, links and words are counted so that
sample code never inflates the metrics.
"""
from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass

_FENCE_RE = re.compile(r"^(```|~~~).*?^\1[^\n]*$", re.MULTILINE | re.DOTALL)
_ATX_RE = re.compile(r"^(#{1,6})\s+([^#].*?)\s*#*\s*$")
_SETEXT_H1_RE = re.compile(r"^=+\s*$")
_SETEXT_H2_RE = re.compile(r"^-{2,}\s*$")
_IMAGE_RE = re.compile(r"!\[([^\]]*)\]\(\s*<?([^)\s>]+)>?(?:\s+\"[^\"]*\")?\s*\)")
_HTML_IMG_RE = re.compile(r"<img\b[^>]*>", re.IGNORECASE)
_HTML_ALT_RE = re.compile(r"\balt\s*=\s*[\"']([^\"']*)[\"']", re.IGNORECASE)
_HTML_SRC_RE = re.compile(r"\bsrc\s*=\s*[\"']([^\"']*)[\"']", re.IGNORECASE)
_BRACKET_LINK_RE = re.compile(r"(?<!!)\[([^\]]*)\]\(\s*<?([^)\s>]+)>?(?:\s+\"[^\"]*\")?\s*\)")
_ANGLE_LINK_RE = re.compile(r"<(https?://[^>\s]+)>")
_BARE_LINK_RE = re.compile(r"https?://[^\s<>()\[\]\"']+")
_WORD_RE = re.compile(r"[^\W_][\w'’-]*", re.UNICODE)
_SENTENCE_END_RE = re.compile(r"[.!?]+(?:\s|$)")
_TLDR_RE = re.compile(r"^(tl;?\s?dr|key takeaways|summary)\b", re.IGNORECASE)
_FAQ_RE = re.compile(r"\b(faq|faqs|frequently asked questions)\b", re.IGNORECASE)


@dataclass(frozen=True)
class Heading:
    level: int
    text: str
    line: int


@dataclass(frozen=True)
class Link:
    url: str
    text: str
    internal: bool


@dataclass(frozen=True)
class Image:
    url: str
    alt: str


def strip_code_fences(markdown: str) -> str:
    return _FENCE_RE.sub("", markdown or "")


def extract_headings(markdown: str) -> list[Heading]:
    """ATX (``## Title``) and Setext (underlined) headings, in document order."""
    lines = strip_code_fences(markdown).splitlines()
    headings: list[Heading] = []
    for i, line in enumerate(lines):
        match = _ATX_RE.match(line)
        if match:
            headings.append(Heading(len(match.group(1)), match.group(2).strip(), i))
            continue
        if i + 1 < len(lines) and line.strip() and not line.startswith(("#", ">", "-", "*", "|")):
            underline = lines[i + 1]
            if _SETEXT_H1_RE.match(underline):
                headings.append(Heading(1, line.strip(), i))
            elif _SETEXT_H2_RE.match(underline):
                headings.append(Heading(2, line.strip(), i))
    return headings


def is_internal_link(url: str) -> bool:
    return not url.lower().startswith(("http://", "https://", "//", "mailto:"))


def extract_links(markdown: str) -> list[Link]:
    """Bracket, angle and bare links. Images are not links."""
    text = _IMAGE_RE.sub(" ", strip_code_fences(markdown))
    links: list[Link] = []

    for match in _BRACKET_LINK_RE.finditer(text):
        url = match.group(2).strip()
        links.append(Link(url, match.group(1).strip(), is_internal_link(url)))
    text = _BRACKET_LINK_RE.sub(" ", text)

    for match in _ANGLE_LINK_RE.finditer(text):
        links.append(Link(match.group(1), match.group(1), False))
    text = _ANGLE_LINK_RE.sub(" ", text)

    for match in _BARE_LINK_RE.finditer(text):
        url = match.group(0).rstrip(".,;:!?")
        links.append(Link(url, url, False))
    return links


def extract_images(markdown: str) -> list[Image]:
    text = strip_code_fences(markdown)
    images = [Image(m.group(2), m.group(1).strip()) for m in _IMAGE_RE.finditer(text)]
    for tag in _HTML_IMG_RE.findall(text):
        src = _HTML_SRC_RE.search(tag)
        alt = _HTML_ALT_RE.search(tag)
        images.append(Image(src.group(1) if src else "", alt.group(1).strip() if alt else ""))
    return images


def to_plain_text(markdown: str) -> str:
    """Drop code, images, link targets, HTML and markup characters."""
    text = strip_code_fences(markdown)
    text = re.sub(r"`[^`]*`", " ", text)
    text = _IMAGE_RE.sub(" ", text)
    text = _BRACKET_LINK_RE.sub(lambda m: m.group(1), text)
    text = re.sub(r"<[^>]+>", " ", text)
    text = re.sub(r"^\s{0,3}(#{1,6}|>|[-*+]|\d+\.)\s+", "", text, flags=re.MULTILINE)
    text = re.sub(r"^[=\-]{2,}\s*$", "", text, flags=re.MULTILINE)
    text = re.sub(r"[*_~|]+", " ", text)
    return re.sub(r"[ \t]+", " ", text).strip()


def count_words(text: str) -> int:
    return len(_WORD_RE.findall(text or ""))


def count_syllables(word: str) -> int:
    word = re.sub(r"[^a-z]", "", word.lower())
    if not word:
        return 0
    if len(word) <= 3:
        return 1
    consonant_le = bool(re.search(r"[^aeiouy]le$", word))
    if word.endswith("e"):
        word = word[:-1]
    groups = len(re.findall(r"[aeiouy]+", word))
    if consonant_le:
        groups += 1
    return max(1, groups)


def estimate_reading_ease(text: str) -> float:
    """Flesch reading ease, clamped to -100..130 and rounded to 2 places."""
    words = _WORD_RE.findall(text or "")
    if not words:
        return 0.0
    sentences = max(1, len(_SENTENCE_END_RE.findall(text)))
    syllables = sum(count_syllables(w) for w in words)
    score = 206.835 - 1.015 * (len(words) / sentences) - 84.6 * (syllables / len(words))
    return round(max(-100.0, min(130.0, score)), 2)


def is_tldr_heading(text: str) -> bool:
    return bool(_TLDR_RE.match(text.strip()))


def is_faq_heading(text: str) -> bool:
    return bool(_FAQ_RE.search(text))


def extract_faq(markdown: str) -> list[tuple[str, str]]:
    """Question/answer pairs from the FAQ section.

    Questions are the ``###`` headings (or bold lines ending in ``?``)
    under an H2 whose title looks like an FAQ; the answer is the text up
    to the next question or heading.
    """
    lines = strip_code_fences(markdown).splitlines()
    in_faq = False
    pairs: list[tuple[str, str]] = []
    question: str | None = None
    answer: list[str] = []

    def _flush():
        if question and " ".join(answer).strip():
            pairs.append((question, " ".join(a.strip() for a in answer if a.strip())))

    for line in lines:
        match = _ATX_RE.match(line)
        if match and len(match.group(1)) <= 2:
            _flush()
            question, answer = None, []
            in_faq = is_faq_heading(match.group(2))
            continue
        if not in_faq:
            continue
        bold_q = re.match(r"^\s*\*\*(.+\?)\*\*\s*$", line)
        if (match and len(match.group(1)) >= 3) or bold_q:
            _flush()
            question = (match.group(2) if match else bold_q.group(1)).strip()
            answer = []
        elif question is not None:
            answer.append(line)
    _flush()
    return pairs


def ensure_single_intro(markdown: str, intro: str | None) -> str:
    """Rebuild the lead so exactly one intro paragraph sits under the H1.

    Whatever the model put between the H1 and the TL;DR heading (or the
    first H2 when there is none) is replaced with *intro*. Without an H1
    or an intro the text is returned unchanged.
    """
    intro = (intro or "").strip()
    if not markdown or not intro:
        return markdown
    lines = markdown.splitlines()
    h1_index = next((i for i, line in enumerate(lines) if re.match(r"^#\s+\S", line)), None)
    if h1_index is None:
        return markdown

    stop = None
    for i in range(h1_index + 1, len(lines)):
        match = _ATX_RE.match(lines[i])
        if match and len(match.group(1)) >= 2 and is_tldr_heading(match.group(2)):
            stop = i
            break
    if stop is None:
        stop = next(
            (i for i in range(h1_index + 1, len(lines)) if re.match(r"^##\s+\S", lines[i])),
            None,
        )

    if stop is None:
        body = "\n".join(lines[h1_index + 1:]).strip()
        if body.startswith(intro):
            body = body[len(intro):].strip()
        rebuilt = lines[: h1_index + 1] + ["", intro]
        return "\n".join(rebuilt + (["", body] if body else [])) + "\n"

    rebuilt = lines[: h1_index + 1] + ["", intro, ""] + lines[stop:]
    return "\n".join(rebuilt)


def slugify(value: str) -> str:
    value = unicodedata.normalize("NFKD", value or "").encode("ascii", "ignore").decode("ascii")
    value = re.sub(r"[^a-zA-Z0-9\s-]", "", value).strip().lower()
    return re.sub(r"[\s_-]+", "-", value).strip("-")
