"""Tests for body structure detection in qa_engine.services.signals."""

import pytest

from qa_engine.services.signals import (
    ContentSignals,
    count_domain_keywords,
    extract_content_signals,
)


class TestExtractContentSignals:
    def test_plain_text_has_no_signals(self):
        assert extract_content_signals("x" * 500, "tax") == ContentSignals()

    def test_bullets(self):
        body = "Two options:\n- file early\n- pay quarterly"
        result = extract_content_signals(body)
        assert result.has_bullets
        assert result.has_paragraphs

    def test_paragraphs_without_bullets(self):
        result = extract_content_signals("One thought.\n\nAnother thought.")
        assert result.has_paragraphs
        assert not result.has_bullets

    def test_single_newline_is_not_paragraphs(self):
        assert not extract_content_signals("line one\nline two").has_paragraphs

    @pytest.mark.parametrize(
        "body",
        [
            "For example, a $100 refund is not income.",
            "Suppose you earn 50k a year.",
            "Costs vary, e.g. filing fees.",
        ],
    )
    def test_examples(self, body):
        assert extract_content_signals(body).has_example

    @pytest.mark.parametrize(
        "body",
        [
            "Step 1 open the portal and sign in.",
            "1. Gather receipts",
            "First, gather your receipts.",
        ],
    )
    def test_steps(self, body):
        assert extract_content_signals(body).has_steps

    def test_domain_keywords_follow_category(self):
        body = "The deduction lowers your withholding next year."
        assert extract_content_signals(body, "tax").has_domain_keywords
        assert not extract_content_signals(body, "insurance").has_domain_keywords
        assert not extract_content_signals(body, None).has_domain_keywords

    def test_one_keyword_is_not_enough(self):
        assert not extract_content_signals("Check your premium.", "insurance").has_domain_keywords

    def test_generic_short_reply(self):
        assert extract_content_signals("It depends on your situation, hard to say.").is_generic

    def test_generic_phrase_in_long_answer_is_fine(self):
        body = "It depends on your income. " + "y" * 300
        assert not extract_content_signals(body).is_generic

    def test_generic_phrase_with_example_is_fine(self):
        body = "It depends. For example, a freelancer pays quarterly."
        assert not extract_content_signals(body).is_generic


class TestCountDomainKeywords:
    def test_counts_distinct_keywords(self):
        assert count_domain_keywords("Dividend stock in a diversified portfolio", "investment") == 4

    def test_unknown_category(self):
        assert count_domain_keywords("tax deduction", "gardening") == 0
