import io
import numpy as np
import pytest
from fastapi.testclient import TestClient
from unittest.mock import MagicMock, patch
from PIL import Image

import app as service
from onboarding.errors import ModelsNotReady
from onboarding.face_match import FaceMatcher
from onboarding.otp import MockOtpVerifier, OtpService
from onboarding.store import ApplicationStore

client = TestClient(service.app)

CARD_TEXT = "INCOME TAX DEPARTMENT\nRAHUL KUMAR\nABCDE1234F\nGOVT OF INDIA"


def png_bytes():
    buf = io.BytesIO()
    Image.new("RGB", (120, 80), (200, 180, 160)).save(buf, "PNG")
    return buf.getvalue()


@pytest.fixture(autouse=True)
def fresh_services(tmp_path):
    registry = MagicMock()
    registry.ready = True
    registry.require_ready.return_value = None
    with patch.object(service, "store", ApplicationStore(upload_dir=str(tmp_path / "uploads"))), \
         patch.object(service, "otp_service", OtpService(MockOtpVerifier(), MagicMock())), \
         patch.object(service, "face_matcher", FaceMatcher(lambda path: np.zeros(128))), \
         patch.object(service, "face_models", registry):
        yield


def create_application():
    response = client.post("/api/applications")
    assert response.status_code == 201
    return response.json()["applicationId"]


def upload_pan(application_id, **data):
    return client.post(
        f"/api/applications/{application_id}/pan",
        files={"panImage": ("card.png", png_bytes(), "image/png")},
        data=data,
    )


def upload_capture(application_id):
    return client.post(
        f"/api/applications/{application_id}/face",
        files={"capture": ("frame.jpg", png_bytes(), "image/jpeg")},
    )


# ------------------------
# Stateless endpoints
# ------------------------
def test_health():
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_process_pan_without_file():
    response = client.post("/api/process-pan")
    assert response.status_code == 400
    assert response.json() == {"error": "No file uploaded"}


@patch("app.process_pan_image", return_value=("ABCDE1234F", CARD_TEXT))
def test_process_pan(mock_process):
    response = client.post(
        "/api/process-pan", files={"panImage": ("card.png", png_bytes(), "image/png")}
    )
    assert response.status_code == 200
    assert response.json() == {"success": True, "panNumber": "ABCDE1234F", "fullText": CARD_TEXT}


@patch("app.process_pan_image", return_value=(None, "GOVT OF INDIA"))
def test_process_pan_not_found(mock_process):
    response = client.post(
        "/api/process-pan", files={"panImage": ("card.png", png_bytes(), "image/png")}
    )
    assert response.status_code == 200
    assert response.json()["success"] is True
    assert response.json()["panNumber"] is None


@patch("app.process_pan_image", side_effect=RuntimeError("engine crashed"))
def test_process_pan_internal_failure(mock_process):
    response = client.post(
        "/api/process-pan", files={"panImage": ("card.png", png_bytes(), "image/png")}
    )
    assert response.status_code == 500
    assert response.json() == {"error": "Error processing PAN card", "details": "engine crashed"}


def test_verify_phone_and_otp():
    response = client.post("/api/verify-phone", json={"phoneNumber": "9876543210"})
    assert response.json() == {"success": True, "message": "OTP sent successfully"}

    response = client.post("/api/verify-otp", json={"phoneNumber": "9876543210", "otp": "123456"})
    assert response.json() == {"success": True, "message": "OTP verified successfully"}


def test_verify_otp_without_send():
    response = client.post("/api/verify-otp", json={"phoneNumber": "9876543210", "otp": "123456"})
    assert response.status_code == 200
    assert response.json() == {"success": False, "message": "Invalid OTP"}


def test_verify_phone_rejects_bad_number():
    response = client.post("/api/verify-phone", json={"phoneNumber": "12345"})
    assert response.status_code == 400
    assert response.json()["success"] is False


def test_verify_otp_rejects_bad_code():
    client.post("/api/verify-phone", json={"phoneNumber": "9876543210"})
    response = client.post("/api/verify-otp", json={"phoneNumber": "9876543210", "otp": "12"})
    assert response.status_code == 400


# ------------------------
# Onboarding flow
# ------------------------
@patch("onboarding.run_steps.recognize_text", return_value=CARD_TEXT)
def test_full_onboarding_flow(mock_ocr):
    application_id = create_application()

    state = client.get(f"/api/applications/{application_id}").json()
    assert state["step"] == 1
    assert len(state["messages"]) == 2

    response = upload_pan(application_id)
    assert response.status_code == 200
    body = response.json()
    assert body["panNumber"] == "ABCDE1234F"
    assert body["source"] == "ocr"
    assert body["step"] == 2
    assert body["application"]["panVerified"] is True

    response = upload_capture(application_id)
    assert response.status_code == 200
    assert response.json()["faceMatch"]["outcome"] == "match"
    assert response.json()["step"] == 3

    response = client.post(f"/api/applications/{application_id}/phone/send-otp",
                           json={"phoneNumber": "9876543210"})
    assert response.json()["success"] is True

    response = client.post(f"/api/applications/{application_id}/phone/verify",
                           json={"phoneNumber": "9876543210", "otp": "123456"})
    assert response.status_code == 200
    assert response.json()["step"] == 4
    assert response.json()["complete"] is True

    summary = client.get(f"/api/applications/{application_id}/summary").json()
    assert summary["status"] == "Complete"
    assert summary["panNumber"] == "ABCDE1234F"
    assert summary["phoneNumber"] == "9876543210"
    assert summary["panVerified"] and summary["faceVerified"] and summary["phoneVerified"]


@patch("onboarding.run_steps.recognize_text", return_value="GOVT OF INDIA")
def test_pan_manual_fallback(mock_ocr):
    application_id = create_application()

    response = upload_pan(application_id)
    assert response.status_code == 422
    assert response.json()["manualEntryRequired"] is True

    response = upload_pan(application_id, panNumber="abcde1234f")
    assert response.status_code == 200
    assert response.json()["source"] == "manual"
    assert response.json()["panNumber"] == "ABCDE1234F"


def test_pan_requires_image():
    application_id = create_application()
    response = client.post(f"/api/applications/{application_id}/pan", data={"panNumber": "ABCDE1234F"})
    assert response.status_code == 400
    assert response.json()["error"] == "InputMissing"


def test_face_before_pan_is_out_of_order():
    application_id = create_application()
    response = upload_capture(application_id)
    assert response.status_code == 409
    assert response.json()["error"] == "StepOutOfOrder"


@patch("onboarding.run_steps.recognize_text", return_value=CARD_TEXT)
def test_face_no_match_allows_retry(mock_ocr):
    application_id = create_application()
    upload_pan(application_id)

    with patch.object(service, "face_matcher", FaceMatcher(
            lambda path: np.zeros(128) if "uploads" in path else np.ones(128))):
        response = upload_capture(application_id)
    assert response.status_code == 422
    assert response.json()["error"] == "NoMatch"

    response = upload_capture(application_id)
    assert response.status_code == 200
    assert response.json()["step"] == 3


@patch("onboarding.run_steps.recognize_text", return_value=CARD_TEXT)
def test_face_no_face_detected(mock_ocr):
    application_id = create_application()
    upload_pan(application_id)

    with patch.object(service, "face_matcher", FaceMatcher(
            lambda path: np.zeros(128) if "uploads" in path else None)):
        response = upload_capture(application_id)
    assert response.status_code == 422
    assert response.json()["error"] == "DetectionFailed"
    assert response.json()["image"] == "capture"


@patch("onboarding.run_steps.recognize_text", return_value=CARD_TEXT)
def test_face_models_not_ready(mock_ocr):
    application_id = create_application()
    upload_pan(application_id)

    registry = MagicMock()
    registry.require_ready.side_effect = ModelsNotReady("Face recognition models not loaded: detector")
    with patch.object(service, "face_models", registry):
        response = upload_capture(application_id)
    assert response.status_code == 503


def test_summary_before_completion():
    application_id = create_application()
    response = client.get(f"/api/applications/{application_id}/summary")
    assert response.status_code == 409


def test_unknown_application():
    response = client.get("/api/applications/nope")
    assert response.status_code == 404
    assert response.json()["error"] == "ApplicationNotFound"


def test_send_otp_before_phone_step():
    application_id = create_application()
    response = client.post(f"/api/applications/{application_id}/phone/send-otp",
                           json={"phoneNumber": "9876543210"})
    assert response.status_code == 409


def test_chat():
    application_id = create_application()
    response = client.post(f"/api/applications/{application_id}/chat", json={"message": "hi"})
    assert response.status_code == 200
    messages = response.json()["messages"]
    assert [m["sender"] for m in messages] == ["user", "bot"]

    response = client.post(f"/api/applications/{application_id}/chat", json={"message": "  "})
    assert response.status_code == 422


def test_delete_application():
    application_id = create_application()
    assert client.delete(f"/api/applications/{application_id}").status_code == 204
    assert client.get(f"/api/applications/{application_id}").status_code == 404


def test_face_models_status():
    with patch.object(service, "face_models", MagicMock(snapshot=MagicMock(return_value={"ready": False}))):
        assert client.get("/api/face-models").json() == {"ready": False}
