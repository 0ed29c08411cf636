import logging
import os
import cv2
import numpy as np
import pytesseract
from config import settings
from .errors import ExternalServiceFailure
from .utils import cleanup_file

logger = logging.getLogger(__name__)

_SHARPEN_KERNEL = np.array([[0, -1, 0], [-1, 5, -1], [0, -1, 0]], dtype=np.float32)


def processed_path_for(image_path: str) -> str:
    return os.path.splitext(image_path)[0] + "_processed.jpg"


def preprocess_image(image_path: str) -> str:
    """
    Prepare a card photo for Tesseract: shrink to fit, grayscale, stretch
    contrast, sharpen and binarise. Returns the processed file path, or the
    original path if the image could not be processed.
    """
    processed_path = processed_path_for(image_path)

    try:
        img = cv2.imread(image_path)
        if img is None:
            raise ValueError("Image could not be loaded")

        h, w = img.shape[:2]
        scale = settings.OCR_MAX_DIMENSION / max(h, w)
        if scale < 1:
            img = cv2.resize(img, (int(w * scale), int(h * scale)), interpolation=cv2.INTER_AREA)

        gray = cv2.cvtColor(img, cv2.COLOR_BGR2GRAY)
        gray = cv2.normalize(gray, None, 0, 255, cv2.NORM_MINMAX)
        gray = cv2.filter2D(gray, -1, _SHARPEN_KERNEL)
        _, binary = cv2.threshold(gray, settings.OCR_BINARY_THRESHOLD, 255, cv2.THRESH_BINARY)

        if not cv2.imwrite(processed_path, binary):
            raise ValueError(f"Could not write {processed_path}")
        return processed_path

    except Exception as e:
        logger.warning("Preprocessing failed for %s, using original: %s", image_path, e)
        return image_path


def tesseract_config() -> str:
    # LSTM engine, one uniform block of text
    return (
        f"--oem 1 --psm 6 "
        f"-c tessedit_char_whitelist={settings.OCR_CHAR_WHITELIST} "
        f"-c preserve_interword_spaces=1"
    )


def recognize_text(image_path: str) -> str:
    """Run OCR over a PAN card image and return the raw recognised text"""
    processed_path = preprocess_image(image_path)
    logger.info("Running OCR on %s", processed_path)

    try:
        text = pytesseract.image_to_string(
            processed_path,
            lang=settings.OCR_LANGUAGE,
            config=tesseract_config(),
        )
    except (pytesseract.TesseractError, pytesseract.TesseractNotFoundError, OSError) as e:
        raise ExternalServiceFailure(f"OCR failed: {e}") from e
    finally:
        if processed_path != image_path:
            cleanup_file(processed_path)

    logger.debug("Raw OCR text: %r", text)
    return text
