from contextlib import asynccontextmanager
from fastapi import FastAPI, File, UploadFile, Form, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

import logging
import tempfile
from typing import Optional

from config import settings
from onboarding.errors import OnboardingError, InputMissing, ValidationFailed
from onboarding.face_match import FaceMatcher
from onboarding.face_models import FaceModelRegistry
from onboarding.file_converter import convert_to_jpeg
from onboarding.otp import OtpService
from onboarding.run_steps import (
    process_pan_image, run_pan_step, run_face_step, send_phone_otp, run_phone_step,
)
from onboarding.schemas import (
    PhoneRequest, OtpRequest, ChatRequest, VerificationResponse, PanProcessResponse,
)
from onboarding.store import ApplicationStore
from onboarding.utils import save_upload, cleanup_dir

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

store = ApplicationStore()
otp_service = OtpService()
face_matcher = FaceMatcher()
face_models = FaceModelRegistry()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # The face step stays disabled until all three bundles load
    face_models.load()
    yield


app = FastAPI(
    title="KYC Onboarding Service",
    description="Bank account opening: PAN card OCR, face match and phone OTP verification",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[x.strip() for x in settings.CORS_ORIGINS.split(",") if x.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(OnboardingError)
async def onboarding_error_handler(request: Request, exc: OnboardingError):
    logger.info("%s %s failed: %s (%s)", request.method, request.url.path, exc.message, exc.kind)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def _has_file(upload: Optional[UploadFile]) -> bool:
    return upload is not None and bool(upload.filename)


# ------------------------
# PAN OCR API
# ------------------------
@app.post("/api/process-pan", response_model=PanProcessResponse)
def process_pan(panImage: Optional[UploadFile] = File(None)):
    """
    OCR a PAN card photo and extract the PAN number.
    Supports JPG / PNG / HEIC / PDF uploads. panNumber is null when nothing
    was found and the client should fall back to manual entry.
    """
    if not _has_file(panImage):
        return JSONResponse(status_code=400, content={"error": "No file uploaded"})

    temp_dir = None

    try:
        temp_dir = tempfile.mkdtemp(prefix="pan_")
        logger.info("Processing PAN card image: %s", panImage.filename)

        raw_path = save_upload(panImage.file, panImage.filename, temp_dir)
        image_path = convert_to_jpeg(raw_path, temp_dir)
        pan_number, text = process_pan_image(image_path)

        return {"success": True, "panNumber": pan_number, "fullText": text}

    except Exception as e:
        logger.exception("Error processing PAN card")
        return JSONResponse(
            status_code=500,
            content={"error": "Error processing PAN card", "details": str(e)},
        )

    finally:
        cleanup_dir(temp_dir)


# ------------------------
# Phone OTP API
# ------------------------
@app.post("/api/verify-phone", response_model=VerificationResponse)
def verify_phone(body: PhoneRequest):
    try:
        otp_service.send_otp(body.phoneNumber)
    except ValidationFailed as e:
        return JSONResponse(status_code=400, content={"success": False, "message": e.message})
    return {"success": True, "message": "OTP sent successfully"}


@app.post("/api/verify-otp", response_model=VerificationResponse)
def verify_otp(body: OtpRequest):
    try:
        is_valid = otp_service.verify_otp(body.phoneNumber, body.otp)
    except ValidationFailed as e:
        return JSONResponse(status_code=400, content={"success": False, "message": e.message})
    return {
        "success": is_valid,
        "message": "OTP verified successfully" if is_valid else "Invalid OTP",
    }


# ------------------------
# Onboarding Application API
# ------------------------
@app.post("/api/applications", status_code=201)
def create_application():
    return store.create().to_dict()


@app.get("/api/applications/{application_id}")
def get_application(application_id: str):
    return store.get(application_id).to_dict()


@app.delete("/api/applications/{application_id}", status_code=204)
def delete_application(application_id: str):
    store.discard(application_id)
    return Response(status_code=204)


@app.post("/api/applications/{application_id}/pan")
def submit_pan(
    application_id: str,
    panImage: Optional[UploadFile] = File(None),
    panNumber: Optional[str] = Form(None),
):
    """
    Step 1. The card image is always required, it is the reference photo for
    the face step. panNumber is the manual fallback when OCR finds nothing.
    """
    orchestrator = store.get(application_id)
    if not _has_file(panImage):
        raise InputMissing("Please upload a photo of your PAN card")

    temp_dir = tempfile.mkdtemp(prefix="pan_")
    try:
        raw_path = save_upload(panImage.file, panImage.filename, temp_dir)
        result = run_pan_step(
            orchestrator,
            raw_path=raw_path,
            files_dir=store.files_dir(application_id),
            manual_pan_number=panNumber,
        )
    finally:
        cleanup_dir(temp_dir)

    return {"success": True, "panNumber": result.pan_number, "source": result.source,
            **orchestrator.to_dict()}


@app.post("/api/applications/{application_id}/face")
def submit_face(application_id: str, capture: Optional[UploadFile] = File(None)):
    """Step 2. capture is the webcam frame"""
    orchestrator = store.get(application_id)
    if not _has_file(capture):
        raise InputMissing("No camera frame captured")

    temp_dir = tempfile.mkdtemp(prefix="face_")
    try:
        raw_path = save_upload(capture.file, capture.filename, temp_dir)
        result = run_face_step(orchestrator, raw_path, temp_dir, face_matcher, face_models)
    finally:
        cleanup_dir(temp_dir)

    return {"success": True, "faceMatch": result.to_dict(), **orchestrator.to_dict()}


@app.post("/api/applications/{application_id}/phone/send-otp", response_model=VerificationResponse)
def submit_phone(application_id: str, body: PhoneRequest):
    send_phone_otp(store.get(application_id), otp_service, body.phoneNumber)
    return {"success": True, "message": "OTP sent successfully"}


@app.post("/api/applications/{application_id}/phone/verify")
def submit_otp(application_id: str, body: OtpRequest):
    """Step 3"""
    orchestrator = store.get(application_id)
    run_phone_step(orchestrator, otp_service, body.phoneNumber, body.otp)
    return {"success": True, "message": "OTP verified successfully", **orchestrator.to_dict()}


@app.post("/api/applications/{application_id}/chat")
def chat(application_id: str, body: ChatRequest):
    orchestrator = store.get(application_id)
    new_messages = orchestrator.assistant.reply(body.message)
    return {"messages": [m.to_dict() for m in new_messages]}


@app.get("/api/applications/{application_id}/summary")
def get_summary(application_id: str):
    return store.get(application_id).summary()


# ------------------------
# Face Models / Health
# ------------------------
@app.get("/api/face-models")
def face_models_status():
    return face_models.snapshot()


@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "service": "kyc-onboarding",
        "faceModelsReady": face_models.ready,
    }


# ------------------------
# Local Dev Entry
# ------------------------
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=5000)
