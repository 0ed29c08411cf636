"""
Error kinds raised by the onboarding steps and mapped to HTTP responses by the API.
"""


class OnboardingError(Exception):
    kind = "OnboardingError"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"success": False, "error": self.kind, "message": self.message}


class InputMissing(OnboardingError):
    """No file, camera frame or field was supplied"""
    kind = "InputMissing"
    status_code = 400


class ValidationFailed(OnboardingError):
    """PAN / phone / OTP did not match the expected format, or was rejected"""
    kind = "ValidationFailed"
    status_code = 422


class PanNotFound(ValidationFailed):
    """OCR found no PAN and no usable manual entry was given"""

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["manualEntryRequired"] = True
        return data


class DetectionFailed(OnboardingError):
    """No face found in one of the images"""
    kind = "DetectionFailed"
    status_code = 422

    def __init__(self, message: str, image: str):
        super().__init__(message)
        self.image = image

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["image"] = self.image
        return data


class NoMatch(OnboardingError):
    """Faces were detected but their distance is over the threshold"""
    kind = "NoMatch"
    status_code = 422

    def __init__(self, message: str, distance: float):
        super().__init__(message)
        self.distance = distance

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["distance"] = round(self.distance, 4)
        return data


class ExternalServiceFailure(OnboardingError):
    """OCR engine, face model or network collaborator failed"""
    kind = "ExternalServiceFailure"
    status_code = 502


class ModelsNotReady(ExternalServiceFailure):
    status_code = 503


class StepOutOfOrder(OnboardingError):
    kind = "StepOutOfOrder"
    status_code = 409


class ApplicationNotFound(OnboardingError):
    kind = "ApplicationNotFound"
    status_code = 404
