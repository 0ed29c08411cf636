import logging
import os
import threading
import time
import uuid
from typing import Callable, Dict, List, Optional
from config import settings
from .errors import ApplicationNotFound
from .orchestrator import OnboardingOrchestrator
from .utils import cleanup_dir

logger = logging.getLogger(__name__)


class ApplicationStore:
    """
    In-memory onboarding sessions, keyed by application id.

    An application untouched for longer than the TTL is dropped together with
    its stored images, finished or not.
    """

    def __init__(self, upload_dir: str = None, ttl_seconds: Optional[int] = None,
                 clock: Callable[[], float] = time.time):
        self.upload_dir = upload_dir or settings.UPLOAD_DIR
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.APPLICATION_TTL_SECONDS
        self.clock = clock
        self._applications: Dict[str, OnboardingOrchestrator] = {}
        self._last_seen: Dict[str, float] = {}
        self._lock = threading.Lock()

    def create(self) -> OnboardingOrchestrator:
        application_id = uuid.uuid4().hex
        orchestrator = OnboardingOrchestrator(application_id)
        now = self.clock()
        with self._lock:
            expired = self._pop_idle(now)
            self._applications[application_id] = orchestrator
            self._last_seen[application_id] = now
        self._cleanup(expired)
        logger.info("Application %s started", application_id)
        return orchestrator

    def get(self, application_id: str) -> OnboardingOrchestrator:
        now = self.clock()
        with self._lock:
            expired = self._pop_idle(now)
            orchestrator = self._applications.get(application_id)
            if orchestrator is not None:
                self._last_seen[application_id] = now
        self._cleanup(expired)
        if orchestrator is None:
            raise ApplicationNotFound(f"Application {application_id} not found")
        return orchestrator

    def files_dir(self, application_id: str) -> str:
        """Where the application's stored images (the PAN card) live"""
        return os.path.join(self.upload_dir, application_id)

    def discard(self, application_id: str) -> None:
        with self._lock:
            orchestrator = self._applications.pop(application_id, None)
            self._last_seen.pop(application_id, None)
        if orchestrator is None:
            raise ApplicationNotFound(f"Application {application_id} not found")
        cleanup_dir(self.files_dir(application_id))
        logger.info("Application %s discarded", application_id)

    def _pop_idle(self, now: float) -> List[str]:
        # Caller holds the lock
        expired = [application_id for application_id, seen in self._last_seen.items()
                   if now - seen > self.ttl_seconds]
        for application_id in expired:
            del self._applications[application_id]
            del self._last_seen[application_id]
        return expired

    def _cleanup(self, expired: List[str]) -> None:
        for application_id in expired:
            cleanup_dir(self.files_dir(application_id))
            logger.info("Application %s expired", application_id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._applications)
