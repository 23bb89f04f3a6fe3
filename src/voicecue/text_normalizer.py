# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Text normalization for script tracking.

Turns Markdown script text into plain text, and plain text into word
sequences. The same segmentation is used for the display words, the
normalized reference words and the transcript words so that indices line up:
index i in the display sequence and index i in the normalized sequence refer
to the same source word.

Line structure is kept with a LINE_BREAK marker token which is never matched
against speech.
"""

import re
from html.parser import HTMLParser

import markdown

# Structural marker placed between non-empty lines
LINE_BREAK: str = "\n"

# Elements whose boundaries start a new line in the plain text
BLOCK_TAGS: frozenset[str] = frozenset([
    'p', 'div', 'h1', 'h2', 'h3', 'h4', 'h5', 'h6',
    'ul', 'ol', 'li', 'blockquote', 'pre', 'hr', 'br',
    'table', 'tr', 'dl', 'dt', 'dd',
])

# Elements whose text is never spoken
SKIPPED_TAGS: frozenset[str] = frozenset(['code', 'pre', 'script', 'style'])

# Non-speech annotations produced by speech recognizers
# e.g. "[BLANK_AUDIO]", "(music)", "♪ la la ♪", "..."
TRANSCRIPT_NOISE_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r'\[[^\]]*\]'),
    re.compile(r'\([^)]*\)'),
    re.compile(r'♪[^♪]*♪'),
    re.compile(r'\.{3,}|…'),
)

_LEADING_PUNCTUATION: re.Pattern[str] = re.compile(r'^[^\w]+')
_TRAILING_PUNCTUATION: re.Pattern[str] = re.compile(r'[^\w]+$')


class PlainTextExtractor(HTMLParser):
    """Collect the speakable text of rendered Markdown, one block per line."""

    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.parts: list[str] = []
        self._skip_depth: int = 0

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        if tag in SKIPPED_TAGS:
            self._skip_depth += 1
        if tag in BLOCK_TAGS:
            self.parts.append("\n")

    def handle_endtag(self, tag: str) -> None:
        if tag in SKIPPED_TAGS and self._skip_depth > 0:
            self._skip_depth -= 1
        if tag in BLOCK_TAGS:
            self.parts.append("\n")

    def handle_startendtag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        # <br />, <hr />, <img /> carry no text of their own
        if tag in BLOCK_TAGS:
            self.parts.append("\n")

    def handle_data(self, data: str) -> None:
        if self._skip_depth == 0:
            self.parts.append(data)

    def get_text(self) -> str:
        """Return the collected text with blank lines collapsed."""
        lines: list[str] = ''.join(self.parts).splitlines()
        return '\n'.join(line.strip() for line in lines if line.strip())


def _build_renderer() -> markdown.Markdown:
    """Markdown renderer that only hides fenced code.

    Indented paragraphs stay paragraphs and raw HTML is rendered as literal
    text, so any words inside angle brackets are still read aloud.
    """
    md: markdown.Markdown = markdown.Markdown(
        extensions=['fenced_code', 'sane_lists', 'nl2br']
    )
    md.parser.blockprocessors.deregister('code')
    md.preprocessors.deregister('html_block')
    md.inlinePatterns.deregister('html')
    return md


def extract_plain_text(markup: str) -> str:
    """Strip Markdown syntax, leaving only the words that will be read aloud.

    Fenced code blocks, inline code and images are dropped; links keep their
    label; heading, list and blockquote markers and emphasis delimiters are
    removed. Text indented like a code block and anything that looks like
    HTML is kept as-is. Each block ends up on its own line and blank lines
    are collapsed.

    Examples:
        "# Title\\n\\nSome **bold** text" -> "Title\\nSome bold text"
        "See [the docs](http://x.org)" -> "See the docs"
        "I said <hello there>" -> "I said <hello there>"
    """
    if not markup.strip():
        return ""

    rendered_html: str = _build_renderer().convert(markup)

    extractor: PlainTextExtractor = PlainTextExtractor()
    extractor.feed(rendered_html)
    extractor.close()
    return extractor.get_text()


def split_for_display(text: str) -> list[str]:
    """Split plain text into display words with LINE_BREAK markers between lines.

    This is the only place words are segmented. Consecutive blank lines
    produce a single marker and the sequence never starts or ends with one.
    """
    result: list[str] = []

    for line in text.splitlines():
        words: list[str] = line.split()
        if not words:
            continue
        if result and result[-1] != LINE_BREAK:
            result.append(LINE_BREAK)
        result.extend(words)

    while result and result[-1] == LINE_BREAK:
        result.pop()
    while result and result[0] == LINE_BREAK:
        result.pop(0)

    return result


def normalize_token(token: str) -> str:
    """Normalize a word for matching (lowercase, strip surrounding punctuation).

    Internal punctuation such as the apostrophe in "don't" is kept.
    """
    cleaned: str = token.lower()
    cleaned = _LEADING_PUNCTUATION.sub('', cleaned)
    cleaned = _TRAILING_PUNCTUATION.sub('', cleaned)
    return cleaned


def tokenize_for_matching(text: str) -> list[str]:
    """Tokenize reference text into normalized words, keeping LINE_BREAK markers.

    Words that normalize to nothing (e.g. a lone "—") are dropped, which
    shifts later indices relative to split_for_display(). Callers that need
    index parity must check the lengths.
    """
    tokens: list[str] = []
    for word in split_for_display(text):
        if word == LINE_BREAK:
            tokens.append(LINE_BREAK)
            continue
        normalized: str = normalize_token(word)
        if normalized:
            tokens.append(normalized)
    return tokens


def tokenize_transcript_fragment(text: str) -> list[str]:
    """Tokenize a transcript fragment, removing recognizer noise first.

    Bracketed and parenthesised annotations, music notes and ellipses are
    removed anywhere in the fragment. The result never contains LINE_BREAK.
    """
    cleaned: str = text
    for pattern in TRANSCRIPT_NOISE_PATTERNS:
        cleaned = pattern.sub(' ', cleaned)

    tokens: list[str] = []
    for word in split_for_display(cleaned):
        if word == LINE_BREAK:
            continue
        normalized: str = normalize_token(word)
        if normalized:
            tokens.append(normalized)
    return tokens
