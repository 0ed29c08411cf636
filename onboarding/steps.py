from dataclasses import dataclass
from enum import IntEnum
from typing import Union


class Step(IntEnum):
    """Wizard steps, in the only order they can be completed"""
    PAN = 1
    FACE = 2
    PHONE = 3
    SUMMARY = 4


@dataclass(frozen=True)
class PanStepResult:
    pan_number: str
    # Stored card image; the face step matches against it
    pan_image_ref: str
    source: str = "ocr"

    step = Step.PAN


@dataclass(frozen=True)
class FaceStepResult:
    distance: float

    step = Step.FACE


@dataclass(frozen=True)
class PhoneStepResult:
    phone_number: str

    step = Step.PHONE


# What a completed step hands to the orchestrator; each variant carries only its own fields
PartialApplicationData = Union[PanStepResult, FaceStepResult, PhoneStepResult]
