"""
Reply chunking utilities
Split a generated reply into short, human-paced message fragments
"""
import re
from typing import Iterator, List

MIN_CHUNK_CHARS = 5
MAX_CHUNK_CHARS = 160

_BLANK_LINE_RE = re.compile(r"\n[ \t]*\n+")
_SENTENCE_END_RE = re.compile(r"(?<=[.!?])\s+")


def _hard_cut(token: str, width: int) -> List[str]:
    return [token[i:i + width] for i in range(0, len(token), width)]


def _wrap_words(fragment: str, width: int) -> List[str]:
    """Wrap a fragment on whitespace into pieces of at most `width` chars."""
    pieces: List[str] = []
    current = ""
    for word in fragment.split():
        if len(word) > width:
            if current:
                pieces.append(current)
                current = ""
            pieces.extend(_hard_cut(word, width))
            continue
        candidate = f"{current} {word}" if current else word
        if len(candidate) <= width:
            current = candidate
        else:
            pieces.append(current)
            current = word
    if current:
        pieces.append(current)
    return pieces


def _fragments(text: str, width: int) -> Iterator[str]:
    # Paragraphs, then lines, then sentences, then words
    for paragraph in _BLANK_LINE_RE.split(text):
        for line in paragraph.split("\n"):
            for sentence in _SENTENCE_END_RE.split(line.strip()):
                sentence = sentence.strip()
                if not sentence:
                    continue
                if len(sentence) <= width:
                    yield sentence
                else:
                    yield from _wrap_words(sentence, width)


def chunk_reply(text: str, max_chunks: int, width: int = MAX_CHUNK_CHARS) -> List[str]:
    """
    Split a reply into at most `max_chunks` non-empty fragments.

    Fragments are greedily merged while the running chunk stays within
    `width` characters. Once only the final slot is left, all remaining
    content goes into the last chunk so nothing is dropped.

    Args:
        text: Full reply text
        max_chunks: Maximum number of fragments to return
        width: Target maximum fragment length

    Returns:
        Ordered list of fragments (empty for blank input)
    """
    if not text or not text.strip() or max_chunks < 1:
        return []

    fragments = list(_fragments(text.strip(), width))
    chunks: List[str] = []
    current = ""

    for index, fragment in enumerate(fragments):
        if len(chunks) >= max_chunks - 1:
            current = " ".join(([current] if current else []) + fragments[index:])
            break
        candidate = f"{current} {fragment}" if current else fragment
        if len(candidate) <= width:
            current = candidate
        else:
            chunks.append(current)
            current = fragment

    if current:
        if chunks and len(current) < MIN_CHUNK_CHARS:
            chunks[-1] = f"{chunks[-1]} {current}"
        else:
            chunks.append(current)

    return [chunk for chunk in chunks if chunk.strip()]
