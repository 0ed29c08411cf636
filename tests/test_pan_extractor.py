import pytest
from unittest.mock import patch
from onboarding.pan_extractor import PanExtractor, normalize_candidate, validate_pan_number


@pytest.fixture
def extractor():
    return PanExtractor()


@pytest.mark.parametrize("value", ["ABCDE1234F", "ZZZZZ0000Z", "PQRST9876A"])
def test_validator_accepts_pan_format(value):
    assert validate_pan_number(value)


@pytest.mark.parametrize("value", [
    "", None, "ABCDE1234", "ABCDE1234FG", "abcde1234f", "ABCD12345F",
    "ABCDE12345", "1BCDE1234F", "ABCDE 1234F", " ABCDE1234F",
])
def test_validator_rejects_everything_else(value):
    assert not validate_pan_number(value)


def test_normalize_candidate():
    assert normalize_candidate("ab-cde 12.34f") == "ABCDE1234F"
    assert normalize_candidate(None) == ""


def test_extract_from_noisy_card_text(extractor):
    text = "INCOME TAX DEPARTMENT\nABCDE1234F\nGOVT OF INDIA"
    assert extractor.extract(text) == "ABCDE1234F"


def test_extract_returns_none_for_short_runs(extractor):
    text = "ABCD1234\nWXYZ5678\nGOVT OF INDIA"
    assert extractor.extract(text) is None


def test_short_runs_are_not_stitched_into_a_pan(extractor):
    # Joined text chunks into XXABCDE123 and a 6-character remainder
    text = "XXABCDE1\n234FXXXX"
    assert extractor.match_full_text(text) is None
    assert extractor.match_confusion_fixed(text) is None
    assert extractor.extract(text) is None


def test_extract_empty_text(extractor):
    assert extractor.extract("") is None
    assert extractor.extract(None) is None


def test_first_match_wins_top_to_bottom(extractor):
    text = "Permanent Account Number\nABCDE1234F\nPQRST5678Z"
    assert extractor.extract(text) == "ABCDE1234F"


def test_line_words_strip_ocr_punctuation(extractor):
    text = "Permanent Account Number Card\nPAN: ABCDE-1234F"
    assert extractor.match_line_runs(text) is None
    assert extractor.extract(text) == "ABCDE1234F"


def test_lowercase_ocr_output_is_upper_cased(extractor):
    assert extractor.extract("name john\npan abcde1234f") == "ABCDE1234F"


def test_split_pan_found_in_full_text(extractor):
    text = "ABCDE\n1234F"
    assert extractor.match_line_runs(text) is None
    assert extractor.match_line_words(text) is None
    assert extractor.extract(text) == "ABCDE1234F"


def test_confusion_fix_in_digit_positions(extractor):
    # S read in place of 5
    assert extractor.extract("ABCDE12S4F\nGOVT OF INDIA") == "ABCDE1254F"


def test_confusion_fix_in_letter_positions(extractor):
    # 0 read in place of O
    assert extractor.extract("0BCDE1234F") == "OBCDE1234F"


def test_fix_confusions_is_position_aware(extractor):
    assert extractor.fix_confusions("5O0SS0O5O5") == "SOOSS0050S"


def test_blocklisted_word_never_returned(extractor):
    with patch("onboarding.pan_extractor.PAN_BLOCKLIST", frozenset({"ABCDE1234F"})):
        assert not extractor.is_likely_pan("ABCDE1234F")
        assert extractor.extract("INCOME TAX DEPARTMENT\nABCDE1234F") is None


def test_blocklist_checked_on_normalized_form(extractor):
    assert not extractor.is_likely_pan("INCOMETAX")
    assert not extractor.is_likely_pan("PAN")
