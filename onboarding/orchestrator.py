import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from .assistant import Assistant
from .errors import InputMissing, StepOutOfOrder
from .steps import (
    Step, PanStepResult, FaceStepResult, PhoneStepResult, PartialApplicationData,
)

logger = logging.getLogger(__name__)


@dataclass
class ApplicationData:
    pan_verified: bool = False
    face_verified: bool = False
    phone_verified: bool = False
    pan_number: Optional[str] = None
    phone_number: Optional[str] = None
    pan_image_ref: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_complete(self) -> bool:
        return self.pan_verified and self.face_verified and self.phone_verified

    def to_dict(self) -> Dict[str, Any]:
        return {
            "panVerified": self.pan_verified,
            "faceVerified": self.face_verified,
            "phoneVerified": self.phone_verified,
            "panNumber": self.pan_number,
            "phoneNumber": self.phone_number,
            "hasPanImage": self.pan_image_ref is not None,
        }


class OnboardingOrchestrator:
    """
    Four-step onboarding wizard: PAN -> FACE -> PHONE -> SUMMARY.

    The orchestrator is the only writer of ApplicationData. Steps hand back a
    PartialApplicationData value, which is merged here, and the wizard moves
    forward exactly one step. There are no backward transitions.
    """

    def __init__(self, application_id: str, assistant: Optional[Assistant] = None):
        self.application_id = application_id
        self.data = ApplicationData()
        self.assistant = assistant or Assistant()
        self._step = Step.PAN
        self._lock = threading.RLock()

    @property
    def is_complete(self) -> bool:
        return self.data.is_complete

    @property
    def current_step(self) -> Step:
        # SUMMARY is derived from the flags, never stored
        if self.data.is_complete:
            return Step.SUMMARY
        return min(self._step, Step.PHONE)

    def require_step(self, step: Step) -> None:
        current = self.current_step
        if current != step:
            raise StepOutOfOrder(
                f"Step {step.name} is not active, current step is {current.name}"
            )

    def complete_step(self, result: PartialApplicationData) -> Step:
        """Merge a successful step result and advance; returns the new step"""
        with self._lock:
            self.require_step(result.step)
            self._merge(result)
            self._step = Step(self._step + 1)

            new_step = self.current_step
            logger.info("Application %s: %s complete, now at %s",
                        self.application_id, result.step.name, new_step.name)
            self.assistant.announce(new_step,
                                    pan_number=self.data.pan_number,
                                    phone_number=self.data.phone_number)
            return new_step

    def _merge(self, result: PartialApplicationData) -> None:
        if isinstance(result, PanStepResult):
            # Without the card image the face step could never complete
            if not result.pan_image_ref:
                raise InputMissing("PAN verification requires the PAN card image")
            self.data.pan_number = result.pan_number
            self.data.pan_image_ref = result.pan_image_ref
            self.data.pan_verified = True
        elif isinstance(result, FaceStepResult):
            self.data.face_verified = True
        elif isinstance(result, PhoneStepResult):
            self.data.phone_number = result.phone_number
            self.data.phone_verified = True
        else:
            raise TypeError(f"Unknown step result: {type(result).__name__}")

    def summary(self) -> Dict[str, Any]:
        if not self.is_complete:
            raise StepOutOfOrder("Application is not complete yet")

        return {
            "applicationId": self.application_id,
            "applicationDate": self.data.created_at.date().isoformat(),
            "status": "Complete",
            "panVerified": self.data.pan_verified,
            "faceVerified": self.data.face_verified,
            "phoneVerified": self.data.phone_verified,
            "panNumber": self.data.pan_number,
            "phoneNumber": self.data.phone_number,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "applicationId": self.application_id,
            "step": int(self.current_step),
            "stepName": self.current_step.name,
            "complete": self.is_complete,
            "application": self.data.to_dict(),
            "messages": [m.to_dict() for m in self.assistant.messages],
        }
