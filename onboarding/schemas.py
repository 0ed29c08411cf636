from typing import Optional
from pydantic import BaseModel


class PhoneRequest(BaseModel):
    phoneNumber: str


class OtpRequest(BaseModel):
    phoneNumber: str
    otp: str


class ChatRequest(BaseModel):
    message: str


class VerificationResponse(BaseModel):
    success: bool
    message: str


class PanProcessResponse(BaseModel):
    success: bool
    panNumber: Optional[str] = None
    fullText: str = ""
