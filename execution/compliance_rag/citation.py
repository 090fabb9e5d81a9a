"""
Clause Reference Extraction for Policy Documents

Finds structured references such as "Clause 5.2" or "Section 3.1" in
policy text and in generated answers.
"""

import re
import logging
from typing import Optional

from .patterns import REFERENCE_PATTERN

logger = logging.getLogger(__name__)


class ReferenceExtractor:
    """
    Extracts clause/section/article/paragraph references from text.

    Matching is case-insensitive; matches are returned exactly as they
    appear in the source, in first-occurrence order, without duplicates.
    """

    def __init__(self, pattern: Optional[re.Pattern] = None):
        self._pattern = pattern or REFERENCE_PATTERN

    def extract(self, text: str) -> list[str]:
        """
        Extract references from text.

        Args:
            text: Any text (chunk content or a generated answer)

        Returns:
            Matched reference strings, first-occurrence order, duplicates removed
        """
        if not text:
            return []

        references = []
        seen = set()
        for match in self._pattern.finditer(text):
            reference = match.group().strip()
            if reference not in seen:
                seen.add(reference)
                references.append(reference)

        return references

    def merge(self, reference_lists: list[list[str]]) -> list[str]:
        """Union several reference lists, keeping first-seen order."""
        merged = []
        seen = set()
        for references in reference_lists:
            for reference in references:
                if reference not in seen:
                    seen.add(reference)
                    merged.append(reference)
        return merged


_default_extractor = ReferenceExtractor()


def extract_references(text: str) -> list[str]:
    """Module-level shortcut using the default pattern."""
    return _default_extractor.extract(text)


# CLI for testing
if __name__ == "__main__":
    import sys

    logging.basicConfig(level=logging.INFO)

    sample = " ".join(sys.argv[1:]) or (
        "Per Clause 5.2 employees must report incidents. "
        "Clause 5.2 also applies to contractors, see Section 3.1."
    )
    print(extract_references(sample))
