import logging
import os
import uuid
from typing import List
from PIL import Image, UnidentifiedImageError
import pillow_heif
from pdf2image import convert_from_path
from pdf2image.exceptions import PDFInfoNotInstalledError, PDFPageCountError, PDFSyntaxError

from .errors import ExternalServiceFailure, ValidationFailed

pillow_heif.register_heif_opener()

logger = logging.getLogger(__name__)

SUPPORTED_IMAGE_EXTS = {".jpg", ".jpeg", ".png", ".heic"}
PDF_EXT = ".pdf"


def convert_to_images(input_path: str, output_dir: str) -> List[str]:
    """
    Converts an uploaded PAN card or capture (image / HEIC / PDF e-PAN)
    into JPEG images. Returns list of image paths, one per page.
    """
    ext = os.path.splitext(input_path)[1].lower()
    os.makedirs(output_dir, exist_ok=True)

    output_paths = []

    # -------- Case 1: Photo or HEIC from a phone camera --------
    if ext in SUPPORTED_IMAGE_EXTS:
        try:
            img = Image.open(input_path).convert("RGB")
        except (UnidentifiedImageError, OSError) as e:
            raise ValidationFailed(f"Unreadable image: {e}") from e
        out_path = os.path.join(output_dir, f"{uuid.uuid4().hex}.jpg")
        img.save(out_path, "JPEG", quality=95)
        return [out_path]

    # -------- Case 2: Downloaded e-PAN PDF --------
    if ext == PDF_EXT:
        try:
            pages = convert_from_path(input_path, dpi=300)
        except PDFInfoNotInstalledError as e:
            raise ExternalServiceFailure(f"PDF renderer unavailable: {e}") from e
        except (PDFPageCountError, PDFSyntaxError) as e:
            raise ValidationFailed(f"Unreadable PDF: {e}") from e
        for i, page in enumerate(pages):
            out_path = os.path.join(
                output_dir, f"{uuid.uuid4().hex}_page{i+1}.jpg"
            )
            page.convert("RGB").save(out_path, "JPEG", quality=95)
            output_paths.append(out_path)
        logger.info("Converted %d PDF page(s) from %s", len(output_paths), input_path)
        return output_paths

    raise ValidationFailed(f"Unsupported file type: {ext or 'unknown'}")


def convert_to_jpeg(input_path: str, output_dir: str) -> str:
    """First page of the upload as JPEG; PAN cards and captures are single-page"""
    images = convert_to_images(input_path, output_dir)
    if not images:
        raise ValidationFailed("No images produced from upload")
    return images[0]
