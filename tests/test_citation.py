"""
Tests for execution/compliance_rag/citation.py

Covers: ReferenceExtractor.extract (keywords, casing, numbering, ordering,
        de-duplication), merge, and the module-level shortcut.
"""

import re

import pytest


class TestReferenceExtractor:
    """Tests for ReferenceExtractor.extract()."""

    @pytest.fixture
    def extractor(self):
        from execution.compliance_rag.citation import ReferenceExtractor
        return ReferenceExtractor()

    def test_order_preserved_duplicates_removed(self, extractor):
        text = "Clause 5.2 applies. See also Clause 5.2 and Section 3.1."
        assert extractor.extract(text) == ["Clause 5.2", "Section 3.1"]

    def test_all_keywords(self, extractor):
        text = "Clause 1, Section 2.3, Article 12 and Paragraph 4.1.2 apply."
        assert extractor.extract(text) == [
            "Clause 1", "Section 2.3", "Article 12", "Paragraph 4.1.2",
        ]

    def test_case_insensitive_match_keeps_source_casing(self, extractor):
        assert extractor.extract("per CLAUSE 7 and section 8.1") == ["CLAUSE 7", "section 8.1"]

    def test_different_casing_is_a_different_reference(self, extractor):
        assert extractor.extract("Clause 7 then clause 7") == ["Clause 7", "clause 7"]

    def test_trailing_sentence_period_not_captured(self, extractor):
        assert extractor.extract("This is governed by Section 3.") == ["Section 3"]

    def test_keyword_without_number_ignored(self, extractor):
        assert extractor.extract("This section explains the clause structure.") == []

    def test_keyword_must_be_whole_word(self, extractor):
        assert extractor.extract("Subsection 4 and intersection 5") == []

    def test_empty_text(self, extractor):
        assert extractor.extract("") == []
        assert extractor.extract(None) == []

    def test_idempotent(self, extractor, sample_policy_text):
        assert extractor.extract(sample_policy_text) == extractor.extract(sample_policy_text)

    def test_sample_policy(self, extractor, sample_policy_text):
        refs = extractor.extract(sample_policy_text)
        assert refs[:3] == ["Clause 1.1", "Clause 1.2", "Section 2"]
        assert "Article 4" in refs
        assert "Paragraph 4.1" in refs
        assert len(refs) == len(set(refs))

    def test_custom_pattern(self):
        from execution.compliance_rag.citation import ReferenceExtractor
        extractor = ReferenceExtractor(pattern=re.compile(r"\bRule\s+\d+", re.IGNORECASE))
        assert extractor.extract("Rule 9 and Clause 1") == ["Rule 9"]


class TestMerge:

    def test_union_keeps_first_seen_order(self):
        from execution.compliance_rag.citation import ReferenceExtractor
        merged = ReferenceExtractor().merge([
            ["Clause 7.1", "Section 2"],
            ["Section 2", "Article 4"],
            [],
        ])
        assert merged == ["Clause 7.1", "Section 2", "Article 4"]

    def test_empty(self):
        from execution.compliance_rag.citation import ReferenceExtractor
        assert ReferenceExtractor().merge([]) == []


def test_module_level_extract_references():
    from execution.compliance_rag.citation import extract_references
    assert extract_references("Clause 5.2 ... Clause 5.2 ... Section 3.1") == ["Clause 5.2", "Section 3.1"]
