"""
=============================================================================
CLASSIFIERS
=============================================================================

The server treats the classifier as a black box:

    classify(text, output_format, preserve_spacing) -> annotated text

Anything with that method can be plugged into TaggerServer. It will be
called concurrently from many session threads with no locking, so
implementations must not mutate shared state while classifying.

GazetteerClassifier is the implementation bundled with the package: a
longest-match phrase lookup over a fixed entity list. It makes the server
usable out of the box and keeps the output formats observable end to end.
Real sequence models plug in through the same interface.

=============================================================================
"""

from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Mapping, Tuple

from ..config import OutputFormat
from .formats import Token, render, tokenize


class Classifier(ABC):
    """Maps raw text plus format options to annotated text."""

    @abstractmethod
    def classify(self, text: str, output_format: OutputFormat, preserve_spacing: bool) -> str:
        """
        Annotate one line of text.

        Args:
            text: A single sentence or document, without line breaks.
            output_format: slashTags, xml or inlineXML.
            preserve_spacing: Keep the input whitespace between tokens.
        """


class GazetteerClassifier(Classifier):
    """
    Tags every known phrase with its entity label.

    Phrases are matched on token boundaries, longest match first, so
    "Stanford University" wins over "Stanford" when both are listed.

    The lookup table is built once in __init__ and only read afterwards,
    which makes classify() safe to call from any number of threads.
    """

    def __init__(
        self,
        entities: Mapping[str, Iterable[str]],
        background: str = "O",
        case_sensitive: bool = True,
        name: str = "gazetteer",
    ):
        self.name = name
        self.background = background
        self.case_sensitive = case_sensitive

        index: Dict[Tuple[str, ...], str] = {}
        for label, phrases in entities.items():
            for phrase in phrases:
                key = self._key(token.text for token in tokenize(phrase))
                if key:
                    index.setdefault(key, label)
        self._index = index
        self._longest = max((len(key) for key in index), default=0)

    @property
    def labels(self) -> List[str]:
        return sorted(set(self._index.values()))

    def __len__(self) -> int:
        return len(self._index)

    def __repr__(self) -> str:
        return f"GazetteerClassifier(name={self.name!r}, phrases={len(self)})"

    def _key(self, words: Iterable[str]) -> Tuple[str, ...]:
        if self.case_sensitive:
            return tuple(words)
        return tuple(word.lower() for word in words)

    def label(self, text: str) -> List[Token]:
        """Tokenize text and attach a label to every token."""
        tokens = tokenize(text)
        labelled: List[Token] = []
        i = 0
        while i < len(tokens):
            match_len, match_label = 0, self.background
            for n in range(min(self._longest, len(tokens) - i), 0, -1):
                found = self._index.get(self._key(t.text for t in tokens[i:i + n]))
                if found is not None:
                    match_len, match_label = n, found
                    break
            if match_len:
                labelled.extend(t.with_label(match_label) for t in tokens[i:i + match_len])
                i += match_len
            else:
                labelled.append(tokens[i].with_label(self.background))
                i += 1
        return labelled

    def classify(self, text: str, output_format: OutputFormat, preserve_spacing: bool) -> str:
        return render(
            text,
            self.label(text),
            output_format,
            preserve_spacing=preserve_spacing,
            background=self.background,
        )
