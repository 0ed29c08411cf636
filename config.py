from pydantic_settings import BaseSettings
from typing import Dict, Any

class Settings(BaseSettings):
    # Face Matching
    # Euclidean distance below which two face embeddings are the same person
    FACE_MATCH_THRESHOLD: float = 0.6
    # "hog" runs on CPU, "cnn" needs the detector bundle and ideally a GPU
    FACE_DETECTION_MODEL: str = "hog"
    FACE_UPSAMPLE_TIMES: int = 1

    # OCR
    OCR_LANGUAGE: str = "eng"
    OCR_MAX_DIMENSION: int = 2000
    OCR_BINARY_THRESHOLD: int = 128
    OCR_CHAR_WHITELIST: str = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"

    # Applications
    # Idle applications are dropped, with their stored images, after this long
    APPLICATION_TTL_SECONDS: int = 3600
    CHAT_HISTORY_LIMIT: int = 200

    # Uploads
    UPLOAD_DIR: str = "uploads"

    # OTP
    # "mock" accepts any well-formed code once an OTP was sent, "strict" checks it
    OTP_POLICY: str = "mock"
    # Pending codes older than this are dropped whatever the policy
    OTP_TTL_SECONDS: int = 300
    SMS_GATEWAY_URL: str = ""
    SMS_GATEWAY_TIMEOUT: float = 5.0

    # Service
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: str = "*"

    class Config:
        env_file = ".env"
        extra = "ignore"

settings = Settings()

# PAN format: 5 letters, 4 digits, 1 letter
PAN_REGEX = r"^[A-Z]{5}[0-9]{4}[A-Z]$"

# Card boilerplate that must never be reported as a PAN
PAN_BLOCKLIST = frozenset({"INCOMETAX", "PERMANENT", "ACCOUNT", "NUMBER", "PAN"})

# Mobile number format
PHONE_REGEX = r"^[0-9]{10}$"

# OTP format
OTP_REGEX = r"^[0-9]{6}$"
OTP_LENGTH = 6

# Face model bundles required before the face step is enabled.
# Sizes are approximate, in bytes; files much smaller than this are likely truncated.
FACE_MODEL_BUNDLES: Dict[str, Dict[str, Any]] = {
    "detector": {
        "locator": "cnn_face_detector_model_location",
        "expected_size": 700_000,
    },
    "landmark": {
        "locator": "pose_predictor_model_location",
        "expected_size": 99_000_000,
    },
    "recognition": {
        "locator": "face_recognition_model_location",
        "expected_size": 22_000_000,
    },
}
