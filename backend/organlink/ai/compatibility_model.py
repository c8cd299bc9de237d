from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Sequence, Tuple

import joblib
import numpy as np
import pandas as pd
from loguru import logger
from sklearn.ensemble import RandomForestClassifier

from ..errors import FeatureSchemaMismatchError, ModelLoadError, TrainingError

MODEL_FILENAME = "organlink_matching.joblib"
MODEL_FEATURES = [
    "patient_age",
    "donor_age",
    "blood_type_match",
    "urgency_level",
    "waiting_time_days",
    "policy_adjustment",
]
LABEL_COLUMN = "match_success"
ARTIFACT_FORMAT = 1
DEFAULT_N_ESTIMATORS = 100


@dataclass
class TrainedModel:
    """A fitted estimator together with the feature schema it was fitted on."""

    estimator: Any
    features: Tuple[str, ...] = tuple(MODEL_FEATURES)
    version: str = ""
    source: str = "unknown"
    trained_at: datetime | None = None
    training_size: int = 0
    metrics: Dict[str, float] = field(default_factory=dict)

    @property
    def is_synthetic(self) -> bool:
        return self.source == "synthetic"

    def _as_frame(self, rows: Sequence[Sequence[float] | Mapping[str, float]]) -> pd.DataFrame:
        if list(self.features) != MODEL_FEATURES:
            raise FeatureSchemaMismatchError(MODEL_FEATURES, self.features)
        matrix: List[List[float]] = []
        for row in rows:
            if isinstance(row, Mapping):
                if set(row) != set(self.features):
                    raise FeatureSchemaMismatchError(self.features, sorted(row))
                matrix.append([float(row[name]) for name in self.features])
            else:
                values = list(row)
                if len(values) != len(self.features):
                    raise FeatureSchemaMismatchError(self.features, [f"<{len(values)} values>"])
                matrix.append([float(value) for value in values])
        return pd.DataFrame(matrix, columns=list(self.features), dtype=float)

    def predict_proba(self, rows: Sequence[Sequence[float] | Mapping[str, float]]) -> np.ndarray:
        """Probability of a successful match for every row."""
        if len(rows) == 0:
            return np.empty(0, dtype=float)
        frame = self._as_frame(rows)
        classes = list(self.estimator.classes_)
        if 1 not in classes:
            raise TrainingError("Model was trained without any successful matches")
        probabilities = np.asarray(self.estimator.predict_proba(frame), dtype=float)
        return np.clip(probabilities[:, classes.index(1)], 0.0, 1.0)

    def describe(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "source": self.source,
            "trained_at": self.trained_at.isoformat() if self.trained_at else None,
            "training_size": self.training_size,
            "features": list(self.features),
            "metrics": dict(self.metrics),
        }


def fit_frame(
    frame: pd.DataFrame,
    *,
    source: str,
    n_estimators: int = DEFAULT_N_ESTIMATORS,
    random_state: int = 42,
    metrics: Dict[str, float] | None = None,
) -> TrainedModel:
    missing = [name for name in MODEL_FEATURES + [LABEL_COLUMN] if name not in frame.columns]
    if missing:
        raise TrainingError(f"Training data is missing columns: {missing}")
    if frame.empty:
        raise TrainingError("Training data is empty")

    X = frame[MODEL_FEATURES].astype(float)
    y = frame[LABEL_COLUMN].astype(int)
    if y.nunique() < 2:
        raise TrainingError("Training data must contain both successful and failed matches")

    estimator = RandomForestClassifier(
        n_estimators=n_estimators,
        random_state=random_state,
        n_jobs=-1,
    )
    estimator.fit(X, y)
    trained_at = datetime.now(timezone.utc)
    logger.info("Trained compatibility model on {} rows ({} source)", len(frame), source)
    return TrainedModel(
        estimator=estimator,
        features=tuple(MODEL_FEATURES),
        version=trained_at.strftime("%Y%m%d%H%M%S"),
        source=source,
        trained_at=trained_at,
        training_size=len(frame),
        metrics=dict(metrics or {}),
    )


def examples_to_frame(examples: Iterable[Tuple[Sequence[float], bool]]) -> pd.DataFrame:
    rows = []
    for vector, outcome in examples:
        values = [float(value) for value in vector]
        if len(values) != len(MODEL_FEATURES):
            raise FeatureSchemaMismatchError(MODEL_FEATURES, [f"<{len(values)} values>"])
        rows.append(values + [int(bool(outcome))])
    return pd.DataFrame(rows, columns=MODEL_FEATURES + [LABEL_COLUMN])


def train(
    examples: Iterable[Tuple[Sequence[float], bool]],
    *,
    n_estimators: int = DEFAULT_N_ESTIMATORS,
    random_state: int = 42,
) -> TrainedModel:
    return fit_frame(
        examples_to_frame(examples),
        source="examples",
        n_estimators=n_estimators,
        random_state=random_state,
    )


def predict(model: TrainedModel, features: Sequence[float] | Mapping[str, float]) -> float:
    return float(model.predict_proba([features])[0])


def save_model(model: TrainedModel, path: Path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = {
        "format": ARTIFACT_FORMAT,
        "estimator": model.estimator,
        "features": list(model.features),
        "version": model.version,
        "source": model.source,
        "trained_at": model.trained_at,
        "training_size": model.training_size,
        "metrics": model.metrics,
    }
    # Write next to the target then rename so readers never see a partial file.
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
    os.close(fd)
    try:
        joblib.dump(payload, tmp_name)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    logger.info("Saved compatibility model {} to {}", model.version, path)
    return path


def load_model(path: Path) -> TrainedModel:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Model file not found at {path}")
    logger.info("Loading compatibility model from {}", path)
    try:
        payload = joblib.load(path)
    except Exception as exc:
        raise ModelLoadError(f"Unreadable model artifact at {path}: {exc!r}") from exc
    if not isinstance(payload, dict) or payload.get("format") != ARTIFACT_FORMAT:
        raise FeatureSchemaMismatchError(MODEL_FEATURES, ["<unrecognised model artifact>"])
    features = list(payload.get("features") or [])
    if features != MODEL_FEATURES:
        raise FeatureSchemaMismatchError(MODEL_FEATURES, features)
    if payload.get("estimator") is None:
        raise ModelLoadError(f"Model artifact at {path} has no estimator")
    return TrainedModel(
        estimator=payload["estimator"],
        features=tuple(features),
        version=payload.get("version", ""),
        source=payload.get("source", "unknown"),
        trained_at=payload.get("trained_at"),
        training_size=payload.get("training_size", 0),
        metrics=payload.get("metrics") or {},
    )
