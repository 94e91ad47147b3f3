from __future__ import annotations

import logging
from typing import List, Sequence

from cinematifier.segmenter.paragraphs import normalize_quotes, split_paragraphs

from .model import BlockIdGenerator, CinematicBlock
from .rules import DEFAULT_RULES, LineRule, classify
from .tags import extract_block_metadata, strip_trailing_tags

logger = logging.getLogger(__name__)


class BlockParser:
    """Turn cinematified model output into an ordered list of blocks.

    Lines are classified by the first matching rule in ``rules``. Inline
    EMOTION/TENSION tags are removed before classification and attached to the
    first block the line produces. Malformed lines fall through to an action
    block; ``parse`` does not raise on text input.
    """

    def __init__(self, ids: BlockIdGenerator, rules: Sequence[LineRule] = DEFAULT_RULES) -> None:
        self.ids = ids
        self.rules = tuple(rules)

    def parse(self, text: str) -> List[CinematicBlock]:
        if not text or not text.strip():
            return []
        prepared = strip_trailing_tags(normalize_quotes(text))
        blocks: List[CinematicBlock] = []
        for paragraph in split_paragraphs(prepared):
            for line in paragraph.split("\n"):
                blocks.extend(self.parse_line(line))
        return blocks

    def parse_line(self, line: str) -> List[CinematicBlock]:
        tagged = extract_block_metadata(line.strip())
        if not tagged.cleaned:
            return []
        try:
            rule, match = classify(tagged.cleaned, self.rules)
            blocks = rule.build(match, self.ids)
        except (LookupError, ValueError) as exc:
            # Custom rule sets may not end in a catch-all; keep the text as narration.
            logger.debug("Falling back to action block for %r: %s", tagged.cleaned, exc)
            blocks = [self.ids.action(tagged.cleaned)]

        if blocks and (tagged.emotion is not None or tagged.tension_score is not None):
            first = blocks[0]
            first.emotion = tagged.emotion
            first.tension_score = tagged.tension_score
        return blocks
