from __future__ import annotations

import re

from cinematifier.segmenter.sentences import split_sentences


def _non_whitespace(text: str) -> str:
    return re.sub(r"\s+", "", text)


def test_splits_on_terminal_punctuation():
    assert split_sentences("The rain fell. She ran! Did he follow?") == [
        "The rain fell.",
        "She ran!",
        "Did he follow?",
    ]


def test_abbreviations_and_initials_do_not_end_sentences():
    text = "Mr. Holt met Dr. Vance at St. Mary's. J. R. Tolkien was mentioned, e.g. in passing."
    assert split_sentences(text) == [
        "Mr. Holt met Dr. Vance at St. Mary's.",
        "J. R. Tolkien was mentioned, e.g. in passing.",
    ]


def test_decimal_numbers_stay_whole():
    assert split_sentences("It cost 3.50 dollars. Pi is 3.14159 roughly.") == [
        "It cost 3.50 dollars.",
        "Pi is 3.14159 roughly.",
    ]


def test_ellipsis_does_not_split():
    sentences = split_sentences("She waited... and waited… then left. Nobody came.")
    assert sentences == ["She waited... and waited… then left.", "Nobody came."]


def test_closing_quotes_are_absorbed():
    assert split_sentences('"Get down!" The glass shattered.') == ['"Get down!"', "The glass shattered."]


def test_preserves_all_non_whitespace_characters():
    text = 'Dr. Chen arrived at 4.30 p.m. "Where is she?" he asked.\nNo answer... Silence!  Then (a knock.)'
    sentences = split_sentences(text)
    assert all(sentence == sentence.strip() and sentence for sentence in sentences)
    assert _non_whitespace(" ".join(sentences)) == _non_whitespace(text)


def test_empty_and_unterminated_input():
    assert split_sentences("") == []
    assert split_sentences("   ") == []
    assert split_sentences("no ending here") == ["no ending here"]
