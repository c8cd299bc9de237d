from __future__ import annotations

import threading
from pathlib import Path
from typing import Callable, Optional

from loguru import logger

from ..errors import ModelLoadError, TrainingInProgressError
from .compatibility_model import TrainedModel, load_model, save_model


class ModelHandle:
    """Shared reference to the current compatibility model.

    Readers take the current reference without locking; a model is never
    mutated after it is published. Training runs are serialized and publish
    the new model by rebinding the reference once it has been persisted.
    """

    def __init__(self, model_path: Path, model: Optional[TrainedModel] = None) -> None:
        self.model_path = Path(model_path)
        self._model = model
        self._load_lock = threading.Lock()
        self._train_lock = threading.Lock()

    @property
    def is_training(self) -> bool:
        return self._train_lock.locked()

    def current(self) -> Optional[TrainedModel]:
        """Return the published model, loading the persisted one on first use.

        An unreadable artifact counts as no model so a cold start can replace it.
        """
        model = self._model
        if model is not None:
            return model
        with self._load_lock:
            if self._model is None and self.model_path.exists():
                try:
                    self._model = load_model(self.model_path)
                except ModelLoadError as exc:
                    logger.error("Ignoring unreadable compatibility model: {}", exc)
            return self._model

    def publish(self, model: TrainedModel) -> TrainedModel:
        save_model(model, self.model_path)
        self._model = model
        logger.info("Published compatibility model {} ({})", model.version, model.source)
        return model

    def train(self, build: Callable[[], TrainedModel], *, wait: bool = False) -> TrainedModel:
        """Run ``build`` and publish its result; at most one run at a time.

        With ``wait=False`` a concurrent caller gets ``TrainingInProgressError``
        instead of queueing behind the active run.
        """
        if not self._train_lock.acquire(blocking=wait):
            raise TrainingInProgressError()
        try:
            return self.publish(build())
        finally:
            self._train_lock.release()

    def ensure(self, build: Callable[[], TrainedModel]) -> TrainedModel:
        """Return the current model, training one with ``build`` if none exists."""
        model = self.current()
        if model is not None:
            return model
        with self._train_lock:
            model = self.current()
            if model is not None:
                return model
            return self.publish(build())
