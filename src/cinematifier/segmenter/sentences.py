from __future__ import annotations

from typing import List

TERMINATORS = ".!?"
CLOSERS = "\"')]}”’»"
OPENERS = "\"'([{“‘«"
ELLIPSIS = "…"

ABBREVIATIONS = frozenset(
    {
        "mr", "mrs", "ms", "dr", "prof", "sr", "jr", "st", "mt", "vs", "etc",
        "e.g", "i.e", "cf", "al", "approx", "capt", "col", "gen", "lt", "sgt",
        "rev", "hon", "gov", "pres", "inc", "ltd", "co", "corp", "no", "vol",
        "fig", "jan", "feb", "mar", "apr", "jun", "jul", "aug", "sep", "sept",
        "oct", "nov", "dec",
    }
)


def split_sentences(text: str) -> List[str]:
    """Split text into trimmed sentences in one forward pass.

    A run of terminators (plus any closing quotes or brackets) ends a sentence
    only when followed by whitespace or the end of the text, so decimals such
    as ``3.14`` never qualify. Ellipses, known abbreviations and single-letter
    initials suppress the boundary.
    """
    sentences: List[str] = []
    length = len(text)
    start = 0
    index = 0
    while index < length:
        if text[index] not in TERMINATORS:
            index += 1
            continue

        run_end = index
        while run_end + 1 < length and text[run_end + 1] in TERMINATORS:
            run_end += 1
        end = run_end + 1
        while end < length and text[end] in CLOSERS:
            end += 1

        at_boundary = end >= length or text[end].isspace()
        if at_boundary and not _suppressed(text, start, index, text[index : run_end + 1]):
            sentence = text[start:end].strip()
            if sentence:
                sentences.append(sentence)
            start = end
        index = end

    tail = text[start:].strip()
    if tail:
        sentences.append(tail)
    return sentences


def _suppressed(text: str, sentence_start: int, position: int, run: str) -> bool:
    if "..." in run:
        return True
    if position > 0 and text[position - 1] == ELLIPSIS:
        return True
    if run != ".":
        return False
    token = _preceding_token(text, sentence_start, position)
    if not token:
        return False
    if len(token) == 1 and token.isalpha() and token.isupper():
        return True
    return token.lower() in ABBREVIATIONS


def _preceding_token(text: str, sentence_start: int, position: int) -> str:
    cursor = position
    while cursor > sentence_start and not text[cursor - 1].isspace():
        cursor -= 1
    return text[cursor:position].lstrip(OPENERS)
