"""
Phone verification by one-time code.

The reference policy (MockOtpVerifier) accepts any well-formed code once an
OTP has been sent to the number. It proves nothing about phone possession and
is only suitable for demos; set OTP_POLICY=strict for a real check.
"""
import logging
import re
import secrets
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional
import requests
from config import settings, PHONE_REGEX, OTP_REGEX, OTP_LENGTH
from .errors import ValidationFailed

logger = logging.getLogger(__name__)

_PHONE_PATTERN = re.compile(PHONE_REGEX)
_OTP_PATTERN = re.compile(OTP_REGEX)


@dataclass
class OtpSession:
    phone_number: str
    code: str
    issued_at: float


def validate_phone_number(phone_number: Optional[str]) -> bool:
    return bool(phone_number) and bool(_PHONE_PATTERN.fullmatch(phone_number))


def validate_otp(code: Optional[str]) -> bool:
    return bool(code) and bool(_OTP_PATTERN.fullmatch(code))


def generate_code() -> str:
    low = 10 ** (OTP_LENGTH - 1)
    return str(low + secrets.randbelow(9 * low))


# ------------------------
# Verifiers
# ------------------------
class MockOtpVerifier:
    """Accepts any code for a number with a pending session"""

    def verify(self, session: OtpSession, code: str, now: float) -> bool:
        return True


class StrictOtpVerifier:
    """Code must match and must not have expired"""

    def __init__(self, ttl_seconds: Optional[int] = None):
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.OTP_TTL_SECONDS

    def verify(self, session: OtpSession, code: str, now: float) -> bool:
        if now - session.issued_at > self.ttl_seconds:
            logger.info("OTP for %s expired", session.phone_number)
            return False
        return secrets.compare_digest(session.code, code)


# ------------------------
# SMS senders
# ------------------------
class LoggingSmsSender:
    """Mock provider: writes the code to the log instead of sending an SMS"""

    def send(self, phone_number: str, message: str) -> None:
        logger.info("Mock SMS to %s: %s", phone_number, message)


class HttpSmsSender:
    """Posts the message to an SMS gateway"""

    def __init__(self, url: str, timeout: Optional[float] = None):
        self.url = url
        self.timeout = timeout if timeout is not None else settings.SMS_GATEWAY_TIMEOUT

    def send(self, phone_number: str, message: str) -> None:
        response = requests.post(
            self.url,
            json={"phoneNumber": phone_number, "message": message},
            timeout=self.timeout,
        )
        response.raise_for_status()


def build_verifier(policy: Optional[str] = None):
    policy = (policy or settings.OTP_POLICY).lower()
    if policy == "mock":
        return MockOtpVerifier()
    if policy == "strict":
        return StrictOtpVerifier()
    raise ValueError(f"Unknown OTP policy: {policy}")


def build_sms_sender(url: Optional[str] = None):
    url = settings.SMS_GATEWAY_URL if url is None else url
    if url:
        return HttpSmsSender(url)
    return LoggingSmsSender()


class OtpService:
    """
    Keeps one pending OTP session per phone number. Sessions older than the
    TTL are dropped on every send and verify, whichever verifier is in use.
    """

    def __init__(self, verifier=None, sms_sender=None, clock: Callable[[], float] = time.time,
                 ttl_seconds: Optional[int] = None):
        self.verifier = verifier or build_verifier()
        self.sms_sender = sms_sender or build_sms_sender()
        self.clock = clock
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.OTP_TTL_SECONDS
        self._sessions: Dict[str, OtpSession] = {}
        self._lock = threading.Lock()

    def send_otp(self, phone_number: str) -> OtpSession:
        if not validate_phone_number(phone_number):
            raise ValidationFailed("Please enter a valid 10-digit phone number")

        now = self.clock()
        session = OtpSession(phone_number=phone_number, code=generate_code(), issued_at=now)
        with self._lock:
            self._prune_expired(now)
            self._sessions[phone_number] = session

        # No delivery confirmation: a failed dispatch is logged and the caller still sees success
        try:
            self.sms_sender.send(phone_number, f"Your verification code is {session.code}")
        except requests.RequestException as e:
            logger.error("SMS dispatch to %s failed: %s", phone_number, e)

        logger.info("OTP issued for %s", phone_number)
        return session

    def verify_otp(self, phone_number: str, code: str) -> bool:
        if not validate_otp(code):
            raise ValidationFailed("Please enter a valid 6-digit OTP")

        now = self.clock()
        with self._lock:
            self._prune_expired(now)
            session = self._sessions.get(phone_number)
            if session is None:
                logger.info("No pending OTP for %s", phone_number)
                return False

            if not self.verifier.verify(session, code, now):
                return False

            # One-shot: a verified session cannot be replayed
            del self._sessions[phone_number]

        logger.info("OTP verified for %s", phone_number)
        return True

    def pending(self, phone_number: str) -> Optional[OtpSession]:
        with self._lock:
            return self._sessions.get(phone_number)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def _prune_expired(self, now: float) -> None:
        # Caller holds the lock
        expired = [number for number, session in self._sessions.items()
                   if now - session.issued_at > self.ttl_seconds]
        for number in expired:
            del self._sessions[number]
        if expired:
            logger.debug("Dropped %d expired OTP sessions", len(expired))
