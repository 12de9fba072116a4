"""Tests for EmergencyKeywordDetector.

Crisis phrases must be caught regardless of case or spacing.
"""
import pytest

from campuscare.services.safety_service.config import EMERGENCY_KEYWORDS
from campuscare.services.safety_service.keyword_detector import (
    EmergencyKeywordDetector,
    detect_emergency,
    extract_matched_keywords,
    normalize_text,
)


@pytest.fixture
def detector():
    return EmergencyKeywordDetector()


class TestNormalizeText:

    def test_collapses_whitespace_and_case(self):
        assert normalize_text("  Kill\n\tMYSELF  ") == "kill myself"

    def test_empty_input(self):
        assert normalize_text(None) == ""
        assert normalize_text("") == ""


class TestDetectEmergency:

    def test_explicit_phrase(self, detector):
        assert detector.detect_emergency("I want to kill myself") is True

    @pytest.mark.parametrize("keyword", EMERGENCY_KEYWORDS)
    def test_every_phrase_detected_in_any_case(self, detector, keyword):
        text = f"lately {keyword.upper()} is all I think about"
        assert detector.detect_emergency(text) is True

    def test_phrase_split_across_irregular_whitespace(self, detector):
        assert detector.detect_emergency("I want   to\ndie") is True

    def test_safe_text(self, detector):
        assert detector.detect_emergency("I had a good day at school today") is False

    def test_empty_text(self, detector):
        assert detector.detect_emergency("") is False
        assert detector.detect_emergency("   ") is False

    def test_repeated_calls_agree(self, detector):
        text = "everything is hopeless"
        assert detector.detect_emergency(text) == detector.detect_emergency(text)


class TestExtractMatchedKeywords:

    def test_declaration_order_not_input_order(self, detector):
        matched = detector.extract_matched_keywords("pills and a rope, I think about suicide")

        assert matched == ["suicide", "pills", "rope"]

    def test_duplicates_collapsed(self, detector):
        matched = detector.extract_matched_keywords("pills pills PILLS")

        assert matched == ["pills"]

    def test_no_matches(self, detector):
        assert detector.extract_matched_keywords("exam tomorrow") == []

    def test_result_is_restartable(self, detector):
        matched = detector.extract_matched_keywords("knife and gun")

        assert list(matched) == list(matched) == ["gun", "knife"]


class TestCustomKeywordList:

    def test_injected_list_replaces_defaults(self):
        detector = EmergencyKeywordDetector(keywords=["Give Up", "give up", "run away"])

        assert detector.keywords == ("give up", "run away")
        assert detector.detect_emergency("I want to kill myself") is False
        assert detector.extract_matched_keywords("I might RUN AWAY and give up") == [
            "give up",
            "run away",
        ]


class TestModuleFunctions:

    def test_default_detector_functions(self):
        assert detect_emergency("thinking about self harm") is True
        assert extract_matched_keywords("thinking about self harm") == ["self harm"]
