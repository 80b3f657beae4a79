"""Text normalization shared by rule loading and matching."""
import re
import unicodedata
from dataclasses import dataclass

_PUNCTUATION_FOLDS = str.maketrans(
    {
        "‘": "'",
        "’": "'",
        "ʼ": "'",
        "“": '"',
        "”": '"',
        "–": "-",
        "—": "-",
    }
)
_WORD_RE = re.compile(r"[\w']+")


@dataclass(frozen=True)
class NormalizedText:
    """Normalized text with, per character, the source span it was produced from."""

    text: str
    starts: tuple[int, ...]
    ends: tuple[int, ...]

    def source_span(self, span: tuple[int, int]) -> tuple[int, int]:
        """Map a non-empty span of ``text`` back onto the text that was normalized."""
        start, end = span
        return self.starts[start], self.ends[end - 1]


def _clusters(text: str):
    # A base character plus its combining marks, so NFKC can still compose them.
    start = 0
    for index in range(1, len(text) + 1):
        if index == len(text) or not unicodedata.combining(text[index]):
            yield start, index
            start = index


def normalize_with_offsets(text: str) -> NormalizedText:
    chars: list[str] = []
    starts: list[int] = []
    ends: list[int] = []
    for start, end in _clusters(text):
        folded = unicodedata.normalize("NFKC", text[start:end]).translate(_PUNCTUATION_FOLDS)
        for char in folded.casefold():
            if char.isspace():
                if not chars or chars[-1] == " ":
                    continue
                char = " "
            chars.append(char)
            starts.append(start)
            ends.append(end)
    if chars and chars[-1] == " ":
        chars.pop()
        starts.pop()
        ends.pop()
    return NormalizedText("".join(chars), tuple(starts), tuple(ends))


def normalize_text(text: str) -> str:
    """Case- and locale-fold text so rules match regardless of input form."""
    return normalize_with_offsets(text).text


def words(text: str) -> list[str]:
    return _WORD_RE.findall(text)
