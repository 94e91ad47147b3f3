from __future__ import annotations

from cinematifier.segmenter.paragraphs import (
    clean_extracted_text,
    group_sentences,
    normalize_quotes,
    reconstruct_paragraphs,
    split_paragraphs,
)


def test_short_paragraphs_are_returned_unchanged():
    text = "First paragraph here.\n\nSecond paragraph here."
    assert reconstruct_paragraphs(text) == text


def test_wall_of_text_is_regrouped_every_four_sentences():
    sentences = [f"Sentence number {index} keeps the story moving along." for index in range(10)]
    wall = " ".join(sentences)
    rebuilt = reconstruct_paragraphs(wall, threshold=100)
    paragraphs = split_paragraphs(rebuilt)
    assert [len(p.split(". ")) for p in paragraphs] == [4, 4, 2]
    assert " ".join(paragraphs) == wall


def test_dialogue_opens_a_new_paragraph():
    text = 'The hall was dark. Rain hit the windows.\n"Who is there?" asked Mara. Nobody answered.'
    rebuilt = reconstruct_paragraphs(text, threshold=10)
    assert split_paragraphs(rebuilt) == [
        "The hall was dark. Rain hit the windows.",
        '"Who is there?" asked Mara. Nobody answered.',
    ]


def test_group_sentences_breaks_on_curly_quotes():
    groups = group_sentences(["It was late.", "“Stay,” she said.", "He stayed."])
    assert groups == [["It was late."], ["“Stay,” she said.", "He stayed."]]


def test_reconstruct_never_empties_input():
    assert reconstruct_paragraphs("word " * 400, threshold=10).strip()


def test_normalize_quotes():
    assert normalize_quotes("“Hi,” she said. ‘Fine’") == "\"Hi,\" she said. 'Fine'"


def test_clean_extracted_text_removes_page_furniture():
    raw = "The storm be-\ngan at dusk.\n\n12\n\nPage 3 of 40\n\n- 4 -\n\n\n\n\n   Morning came.   "
    cleaned = clean_extracted_text(raw)
    assert "began at dusk." in cleaned
    assert "Page 3" not in cleaned
    assert "- 4 -" not in cleaned
    assert "\n12\n" not in cleaned
    assert cleaned.endswith("Morning came.")
    assert "\n\n\n\n" not in cleaned
