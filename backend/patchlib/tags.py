"""
Implicit patch tags.

Tags are inferred by case-insensitive keyword matching of the patch name
and the name of the bank it lives in.
"""

from typing import Iterable, List, Tuple

# (tag, keyword) pairs, in the order tags are reported
TAG_KEYWORDS: Tuple[Tuple[str, str], ...] = (
    ("bass", "bass"),
    ("lead", "lead"),
    ("pad", "pad"),
    ("strings", "string"),
    ("pluck", "pluck"),
)


def infer_tags(patch_name: str, bank_name: str) -> List[str]:
    """Return the tags whose keyword appears in the patch or bank name."""
    name = (patch_name or "").lower()
    bank = (bank_name or "").lower()
    return [tag for tag, keyword in TAG_KEYWORDS if keyword in name or keyword in bank]


def normalize_tags(tags: Iterable[str]) -> List[str]:
    """Strip blanks and drop duplicates while preserving order."""
    seen = set()
    unique_tags = []
    for tag in tags:
        tag = tag.strip()
        if tag and tag not in seen:
            seen.add(tag)
            unique_tags.append(tag)
    return unique_tags
