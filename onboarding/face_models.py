import logging
import os
import threading
from typing import Any, Dict
import face_recognition_models
from config import FACE_MODEL_BUNDLES
from .errors import ModelsNotReady

logger = logging.getLogger(__name__)

# Allow 10% under the expected size before warning about a truncated download
SIZE_MARGIN = 0.9


class FaceModelRegistry:
    """
    Tracks the detector, landmark and recognition bundles. The face step
    stays disabled until every bundle has loaded.
    """

    def __init__(self, bundles: Dict[str, Dict[str, Any]] = None):
        self.bundles = bundles if bundles is not None else FACE_MODEL_BUNDLES
        self.status: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def _load_bundle(self, name: str, config: Dict[str, Any]) -> Dict[str, Any]:
        locator = getattr(face_recognition_models, config["locator"])
        path = locator()
        size = os.path.getsize(path)

        if size < config["expected_size"] * SIZE_MARGIN:
            logger.warning(
                "Face model %s (%s) is %d bytes, smaller than expected %d",
                name, path, size, config["expected_size"],
            )
        else:
            logger.info("Loaded face model %s (%.2fMB)", name, size / (1024 * 1024))

        return {"loaded": True, "path": path, "size": size}

    def load(self) -> bool:
        with self._lock:
            for name, config in self.bundles.items():
                try:
                    self.status[name] = self._load_bundle(name, config)
                except (AttributeError, OSError) as e:
                    logger.error("Failed to load face model %s: %s", name, e)
                    self.status[name] = {"loaded": False, "error": str(e)}

        if self.ready:
            logger.info("All face models loaded")
        return self.ready

    @property
    def ready(self) -> bool:
        return all(self.status.get(name, {}).get("loaded") for name in self.bundles)

    def missing(self):
        return [name for name in self.bundles if not self.status.get(name, {}).get("loaded")]

    def require_ready(self) -> None:
        if not self.ready:
            raise ModelsNotReady(
                f"Face recognition models not loaded: {', '.join(self.missing())}"
            )

    def snapshot(self) -> Dict[str, Any]:
        return {
            "ready": self.ready,
            "models": {
                name: {
                    "loaded": bool(self.status.get(name, {}).get("loaded")),
                    "error": self.status.get(name, {}).get("error"),
                }
                for name in self.bundles
            },
        }
