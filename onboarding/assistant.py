from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional
from config import settings
from .errors import ValidationFailed
from .steps import Step

BOT = "bot"
USER = "user"

WELCOME_MESSAGES = [
    "Hello! I'm your bank account opening assistant. Let's get started with the verification process.",
    "Please verify your PAN card by uploading a photo or entering the number manually.",
]

STEP_MESSAGES = {
    Step.FACE: "Now, let's verify your identity by matching your face with the PAN card photo.",
    Step.PHONE: "Finally, please enter your phone number to receive an OTP for verification.",
    Step.SUMMARY: (
        "All verifications complete! Your account will be activated within 24 hours. "
        "PAN: {pan_number}, Phone: {phone_number}"
    ),
}

DEFAULT_REPLY = "Please follow the steps shown on the screen to complete your account opening."


@dataclass
class ChatMessage:
    text: str
    sender: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        return {
            "text": self.text,
            "sender": self.sender,
            "timestamp": self.timestamp.isoformat(),
        }


class Assistant:
    """Chat transcript narrating the onboarding steps, keeping the latest messages only"""

    def __init__(self, history_limit: Optional[int] = None):
        self.history_limit = history_limit or settings.CHAT_HISTORY_LIMIT
        self.messages: List[ChatMessage] = []
        for text in WELCOME_MESSAGES:
            self.say(text)

    def say(self, text: str) -> ChatMessage:
        return self._record(ChatMessage(text=text, sender=BOT))

    def _record(self, message: ChatMessage) -> ChatMessage:
        self.messages.append(message)
        del self.messages[:-self.history_limit]
        return message

    def announce(self, step: Step, pan_number: Optional[str] = None,
                 phone_number: Optional[str] = None) -> Optional[ChatMessage]:
        template = STEP_MESSAGES.get(step)
        if template is None:
            return None
        return self.say(template.format(pan_number=pan_number, phone_number=phone_number))

    def reply(self, text: Optional[str]) -> List[ChatMessage]:
        if not text or not text.strip():
            raise ValidationFailed("Message must not be empty")

        user_message = self._record(ChatMessage(text=text.strip(), sender=USER))
        return [user_message, self.say(DEFAULT_REPLY)]
