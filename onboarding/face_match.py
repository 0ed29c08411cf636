import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional
import numpy as np
from config import settings
from .errors import ExternalServiceFailure

logger = logging.getLogger(__name__)

CAPTURE = "capture"
REFERENCE = "reference"

# image path -> embedding of the first face found, or None when there is no face
FaceEncoder = Callable[[str], Optional[np.ndarray]]


class FaceMatchOutcome(str, Enum):
    MATCH = "match"
    NO_MATCH = "no_match"
    NO_FACE_DETECTED = "no_face_detected"


@dataclass
class FaceMatchResult:
    outcome: FaceMatchOutcome
    distance: Optional[float] = None
    missing_face: Optional[str] = None

    @property
    def is_match(self) -> bool:
        return self.outcome == FaceMatchOutcome.MATCH

    def to_dict(self) -> dict:
        return {
            "outcome": self.outcome.value,
            "distance": round(self.distance, 4) if self.distance is not None else None,
            "missing_face": self.missing_face,
        }


def encode_first_face(image_path: str) -> Optional[np.ndarray]:
    """128-d dlib embedding of the first detected face, None if no face"""
    # dlib takes seconds to import, load on first use
    import face_recognition

    image = face_recognition.load_image_file(image_path)
    locations = face_recognition.face_locations(
        image,
        number_of_times_to_upsample=settings.FACE_UPSAMPLE_TIMES,
        model=settings.FACE_DETECTION_MODEL,
    )
    if not locations:
        return None

    # Multiple faces are not disambiguated, the first detection is used
    encodings = face_recognition.face_encodings(image, known_face_locations=locations[:1])
    if not encodings:
        return None
    return encodings[0]


def face_distance(a: np.ndarray, b: np.ndarray) -> float:
    return float(np.linalg.norm(np.asarray(a) - np.asarray(b)))


def classify_distance(distance: float, threshold: float) -> FaceMatchOutcome:
    if distance < threshold:
        return FaceMatchOutcome.MATCH
    return FaceMatchOutcome.NO_MATCH


class FaceMatcher:
    """
    Compares a live capture with the photo on the PAN card.
    """

    def __init__(self, encoder: Optional[FaceEncoder] = None, threshold: Optional[float] = None):
        self.encoder = encoder or encode_first_face
        self._threshold = threshold

    @property
    def threshold(self) -> float:
        if self._threshold is not None:
            return self._threshold
        return settings.FACE_MATCH_THRESHOLD

    def _encode_both(self, capture_path: str, reference_path: str):
        with ThreadPoolExecutor(max_workers=2) as pool:
            capture_future = pool.submit(self.encoder, capture_path)
            reference_future = pool.submit(self.encoder, reference_path)
            try:
                return capture_future.result(), reference_future.result()
            except (OSError, ValueError, RuntimeError) as e:
                raise ExternalServiceFailure(f"Face embedding failed: {e}") from e

    def compare(self, capture_path: str, reference_path: str) -> FaceMatchResult:
        capture_encoding, reference_encoding = self._encode_both(capture_path, reference_path)

        if capture_encoding is None:
            logger.info("No face detected in capture")
            return FaceMatchResult(FaceMatchOutcome.NO_FACE_DETECTED, missing_face=CAPTURE)
        if reference_encoding is None:
            logger.info("No face detected in reference image")
            return FaceMatchResult(FaceMatchOutcome.NO_FACE_DETECTED, missing_face=REFERENCE)

        distance = face_distance(capture_encoding, reference_encoding)
        outcome = classify_distance(distance, self.threshold)
        logger.info("Face comparison: distance=%.4f threshold=%.2f outcome=%s",
                    distance, self.threshold, outcome.value)
        return FaceMatchResult(outcome, distance=distance)
