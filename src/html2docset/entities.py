"""Named-entity re-encoding of rendered markup."""

from __future__ import annotations

from html.entities import codepoint2name
from typing import Dict

# HTML 4 named entities outside ASCII. &quot; &amp; &lt; &gt; are left to the
# serializer.
POINT_TO_ENTITY: Dict[int, str] = {
    codepoint: f"&{name};" for codepoint, name in codepoint2name.items() if codepoint > 127
}


def encode_html_entities(text: str) -> str:
    """Replace every character of POINT_TO_ENTITY with its named entity.

    Only raw code points are mapped, so the output of a previous call passes
    through unchanged.
    """
    if not text:
        return text
    return text.translate(POINT_TO_ENTITY)
