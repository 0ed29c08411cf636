import logging
from typing import Optional, Tuple

from .errors import (
    DetectionFailed, ExternalServiceFailure, NoMatch, PanNotFound, ValidationFailed,
)
from .face_match import CAPTURE, REFERENCE, FaceMatcher, FaceMatchOutcome, FaceMatchResult
from .face_models import FaceModelRegistry
from .file_converter import convert_to_jpeg
from .ocr import recognize_text
from .orchestrator import OnboardingOrchestrator
from .otp import OtpService
from .pan_extractor import PanExtractor, validate_pan_number
from .steps import Step, PanStepResult, FaceStepResult, PhoneStepResult
from .utils import cleanup_file

logger = logging.getLogger(__name__)

NO_FACE_MESSAGES = {
    CAPTURE: "No face detected in webcam image. Please try again.",
    REFERENCE: "No face detected in PAN card image. Please upload a clearer image.",
}
FACE_MISMATCH_MESSAGE = (
    "Face verification failed. The face in the webcam does not match the PAN card photo."
)


def process_pan_image(image_path: str, extractor: Optional[PanExtractor] = None) -> Tuple[Optional[str], str]:
    """
    OCR a converted PAN card image and look for the PAN number.

    Returns (pan_number or None, full OCR text).
    """
    extractor = extractor or PanExtractor()
    text = recognize_text(image_path)
    pan_number = extractor.extract(text)
    logger.info("Extracted PAN number: %s", pan_number)
    return pan_number, text


def run_pan_step(orchestrator: OnboardingOrchestrator,
                 raw_path: str,
                 files_dir: str,
                 manual_pan_number: Optional[str] = None) -> PanStepResult:
    """
    Step 1: the uploaded card is kept as the face-match reference. OCR is
    tried first; the manually typed number is only used when OCR finds nothing.
    """
    orchestrator.require_step(Step.PAN)

    image_path = convert_to_jpeg(raw_path, files_dir)
    pan_number, source = None, "ocr"

    try:
        pan_number, _ = process_pan_image(image_path)
    except ExternalServiceFailure:
        if not manual_pan_number:
            cleanup_file(image_path)
            raise
        logger.warning("OCR unavailable for application %s, using manual entry",
                       orchestrator.application_id)

    if not pan_number:
        if not manual_pan_number:
            cleanup_file(image_path)
            raise PanNotFound("Could not extract PAN number. Please try again or enter manually.")
        # The entry field upper-cases as the user types
        manual_pan_number = manual_pan_number.strip().upper()
        if not validate_pan_number(manual_pan_number):
            cleanup_file(image_path)
            raise ValidationFailed("Please enter a valid PAN number")
        pan_number, source = manual_pan_number, "manual"

    result = PanStepResult(pan_number=pan_number, pan_image_ref=image_path, source=source)
    orchestrator.complete_step(result)
    return result


def run_face_step(orchestrator: OnboardingOrchestrator,
                  raw_capture_path: str,
                  work_dir: str,
                  matcher: FaceMatcher,
                  registry: FaceModelRegistry) -> FaceMatchResult:
    """Step 2: match the webcam capture against the PAN card photo"""
    orchestrator.require_step(Step.FACE)
    registry.require_ready()

    capture_path = convert_to_jpeg(raw_capture_path, work_dir)
    result = matcher.compare(capture_path, orchestrator.data.pan_image_ref)

    if result.outcome == FaceMatchOutcome.NO_FACE_DETECTED:
        raise DetectionFailed(NO_FACE_MESSAGES[result.missing_face], image=result.missing_face)
    if result.outcome == FaceMatchOutcome.NO_MATCH:
        raise NoMatch(FACE_MISMATCH_MESSAGE, distance=result.distance)

    orchestrator.complete_step(FaceStepResult(distance=result.distance))
    return result


def send_phone_otp(orchestrator: OnboardingOrchestrator, otp_service: OtpService, phone_number: str) -> None:
    orchestrator.require_step(Step.PHONE)
    otp_service.send_otp(phone_number)


def run_phone_step(orchestrator: OnboardingOrchestrator,
                   otp_service: OtpService,
                   phone_number: str,
                   code: str) -> PhoneStepResult:
    """Step 3: the OTP must verify for the same number it was sent to"""
    orchestrator.require_step(Step.PHONE)

    if not otp_service.verify_otp(phone_number, code):
        raise ValidationFailed("Invalid OTP. Please try again.")

    result = PhoneStepResult(phone_number=phone_number)
    orchestrator.complete_step(result)
    return result
