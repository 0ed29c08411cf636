import logging
import re
from typing import Callable, List, Optional, Tuple
from config import PAN_REGEX, PAN_BLOCKLIST

logger = logging.getLogger(__name__)

_PAN_PATTERN = re.compile(PAN_REGEX)
_RUN_PATTERN = re.compile(r"[A-Z0-9]{10}")

# Positions of a PAN that hold letters; 5-8 hold digits
_LETTER_POSITIONS = {0, 1, 2, 3, 4, 9}
_TO_LETTER = {"5": "S", "0": "O"}
_TO_DIGIT = {"S": "5", "O": "0"}


def normalize_candidate(text: Optional[str]) -> str:
    """Strip everything but letters and digits and upper-case the rest"""
    if not text:
        return ""
    return re.sub(r"[^A-Z0-9]", "", text.upper())


def validate_pan_number(value: Optional[str]) -> bool:
    """Manual-entry check: exact format only, no OCR correction"""
    if not value:
        return False
    return bool(_PAN_PATTERN.fullmatch(value))


class PanExtractor:
    """
    Finds a PAN in raw OCR text.

    Strategies run from strictest to loosest and the first hit wins, so a
    clean line match is always preferred over a corrected guess.
    """

    def __init__(self):
        self.strategies: List[Tuple[str, Callable[[str], Optional[str]]]] = [
            ("line_runs", self.match_line_runs),
            ("line_words", self.match_line_words),
            ("full_text", self.match_full_text),
            ("confusion_fix", self.match_confusion_fixed),
        ]

    def is_likely_pan(self, candidate: str) -> bool:
        cleaned = normalize_candidate(candidate)
        return (
            len(cleaned) == 10
            and bool(_PAN_PATTERN.fullmatch(cleaned))
            and cleaned not in PAN_BLOCKLIST
        )

    def match_line_runs(self, text: str) -> Optional[str]:
        """10-character alphanumeric runs inside each line"""
        for line in text.splitlines():
            for run in _RUN_PATTERN.findall(line):
                if self.is_likely_pan(run):
                    return normalize_candidate(run)
        return None

    def match_line_words(self, text: str) -> Optional[str]:
        """Whitespace-separated words, cleaned of OCR punctuation"""
        for line in text.splitlines():
            for word in line.split():
                cleaned = normalize_candidate(word)
                if self.is_likely_pan(cleaned):
                    return cleaned
        return None

    def match_full_text(self, text: str) -> Optional[str]:
        """Consecutive 10-character chunks of the text with line breaks and spaces removed"""
        for run in _RUN_PATTERN.findall(normalize_candidate(text)):
            if self.is_likely_pan(run):
                return run
        return None

    def match_confusion_fixed(self, text: str) -> Optional[str]:
        for run in _RUN_PATTERN.findall(normalize_candidate(text)):
            fixed = self.fix_confusions(run)
            if fixed != run and self.is_likely_pan(fixed):
                return fixed
        return None

    def fix_confusions(self, run: str) -> str:
        """Swap 5/S and 0/O into whichever one the PAN position expects"""
        chars = []
        for i, ch in enumerate(run):
            if i in _LETTER_POSITIONS:
                chars.append(_TO_LETTER.get(ch, ch))
            else:
                chars.append(_TO_DIGIT.get(ch, ch))
        return "".join(chars)

    def extract(self, text: Optional[str]) -> Optional[str]:
        """Return the first PAN found in the OCR text, or None"""
        if not text:
            return None

        for name, strategy in self.strategies:
            pan_number = strategy(text)
            if pan_number:
                logger.info("PAN found by %s strategy", name)
                return pan_number

        logger.info("No PAN found in OCR text")
        return None
