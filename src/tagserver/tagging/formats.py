"""
=============================================================================
OUTPUT FORMATS
=============================================================================

Renders a labelled token sequence in one of the three output styles.

    Input:  "Alice  works at Foo."

    slashTags
        Alice/PERSON  works/O at/O Foo/ORGANIZATION./O

    xml
        <wi num="0" entity="PERSON">Alice</wi>  <wi num="1" entity="O">works</wi> ...

    inlineXML
        <PERSON>Alice</PERSON>  works at <ORGANIZATION>Foo</ORGANIZATION>.

With preserve_spacing the whitespace between tokens is copied from the
input (the two spaces after "Alice" above, and no space before "."). Without
it every pair of tokens is separated by exactly one space.

=============================================================================
"""

import re
from dataclasses import dataclass
from typing import Iterator, List, Sequence
from xml.sax.saxutils import escape, quoteattr

from ..config import OutputFormat


# Words (with inner hyphens/apostrophes) or single punctuation marks.
_TOKEN_RE = re.compile(r"\w+(?:[-'’]\w+)*|[^\w\s]", re.UNICODE)


@dataclass(frozen=True)
class Token:
    """A token, its character offsets in the input, and its label."""

    text: str
    start: int
    end: int
    label: str = "O"

    def with_label(self, label: str) -> "Token":
        return Token(self.text, self.start, self.end, label)


def tokenize(text: str) -> List[Token]:
    """Split text into word and punctuation tokens, keeping offsets."""
    return [Token(m.group(), m.start(), m.end()) for m in _TOKEN_RE.finditer(text)]


def _separators(text: str, tokens: Sequence[Token], preserve_spacing: bool) -> Iterator[str]:
    """Yield the whitespace to emit before each token."""
    previous_end = None
    for token in tokens:
        if previous_end is None:
            yield ""
        elif preserve_spacing:
            yield text[previous_end:token.start]
        else:
            yield " "
        previous_end = token.end


def render(
    text: str,
    tokens: Sequence[Token],
    output_format: OutputFormat,
    preserve_spacing: bool = True,
    background: str = "O",
) -> str:
    """
    Serialize labelled tokens.

    Args:
        text: The original input (source of the inter-token whitespace).
        tokens: Tokens in input order, each carrying its label.
        output_format: Which style to produce.
        preserve_spacing: Keep the input whitespace between tokens.
        background: The "no entity" label.
    """
    output_format = OutputFormat.parse(output_format)
    if output_format is OutputFormat.SLASH_TAGS:
        return _render_slash_tags(text, tokens, preserve_spacing)
    if output_format is OutputFormat.XML:
        return _render_xml(text, tokens, preserve_spacing)
    return _render_inline_xml(text, tokens, preserve_spacing, background)


def _render_slash_tags(text, tokens, preserve_spacing):
    parts = []
    for sep, token in zip(_separators(text, tokens, preserve_spacing), tokens):
        parts.append(f"{sep}{token.text}/{token.label}")
    return "".join(parts)


def _render_xml(text, tokens, preserve_spacing):
    parts = []
    for num, (sep, token) in enumerate(zip(_separators(text, tokens, preserve_spacing), tokens)):
        parts.append(
            f"{sep}<wi num=\"{num}\" entity={quoteattr(token.label)}>{escape(token.text)}</wi>"
        )
    return "".join(parts)


def _render_inline_xml(text, tokens, preserve_spacing, background):
    parts = []
    open_label = None
    for sep, token in zip(_separators(text, tokens, preserve_spacing), tokens):
        label = None if token.label == background else token.label
        if open_label is not None and label != open_label:
            parts.append(f"</{open_label}>")
        parts.append(sep)
        if label is not None and label != open_label:
            parts.append(f"<{label}>")
        parts.append(escape(token.text))
        open_label = label
    if open_label is not None:
        parts.append(f"</{open_label}>")
    return "".join(parts)
