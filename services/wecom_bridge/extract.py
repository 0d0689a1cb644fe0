import re
from typing import Dict, Iterable


def tag_value(text: str, tag: str) -> str:
    """Value of the first top-level ``<tag>`` field, CDATA-wrapped or plain.

    Missing tags yield an empty string. Not an XML parser: fields are assumed
    flat and unnested.
    """
    t = re.escape(tag)
    pattern = rf"<{t}><!\[CDATA\[(.*?)\]\]></{t}>|<{t}>(.*?)</{t}>"
    m = re.search(pattern, text, re.S)
    if not m:
        return ""
    return (m.group(1) or m.group(2) or "").strip()


def extract(text: str, tags: Iterable[str]) -> Dict[str, str]:
    return {tag: tag_value(text, tag) for tag in tags}
