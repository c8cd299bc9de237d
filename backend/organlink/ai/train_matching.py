from __future__ import annotations

import argparse
from pathlib import Path
from typing import Any, Dict

import pandas as pd
from loguru import logger
from sklearn.ensemble import RandomForestClassifier
from sklearn.model_selection import StratifiedKFold, cross_validate

from ..database import Settings, get_settings
from ..errors import DatasetError, ModelNotTrainedError, TrainingError
from .compatibility_model import LABEL_COLUMN, MODEL_FEATURES, TrainedModel, fit_frame
from .model_handle import ModelHandle
from .synthetic_data import generate_synthetic_dataset

SUCCESS_LABELS = {"1", "1.0", "true", "yes", "success"}
FAILURE_LABELS = {"0", "0.0", "false", "no", "failure"}
EVALUATION_SCORING = ["accuracy", "precision_weighted", "recall_weighted", "f1_weighted"]
# Attribute names used by datasets exported from the earlier matching service.
LEGACY_COLUMN_NAMES = {
    "PatientAge": "patient_age",
    "DonorAge": "donor_age",
    "BloodTypeMatch": "blood_type_match",
    "UrgencyLevel": "urgency_level",
    "WaitingTime": "waiting_time_days",
    "PolicyAdjustment": "policy_adjustment",
}


def _normalize_label(value: Any) -> int:
    text = str(value).strip().lower()
    if text in SUCCESS_LABELS:
        return 1
    if text in FAILURE_LABELS:
        return 0
    raise DatasetError(f"Unrecognised outcome label {value!r}")


def load_csv_dataset(path: Path) -> pd.DataFrame:
    """Read a labelled dataset: named feature columns plus a trailing outcome column."""
    path = Path(path)
    if not path.exists():
        raise DatasetError(f"Training dataset not found at {path}")
    try:
        raw = pd.read_csv(path)
    except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as exc:
        raise DatasetError(f"Unable to read dataset {path}: {exc}") from exc

    raw = raw.rename(columns=LEGACY_COLUMN_NAMES)
    columns = list(raw.columns)
    if not columns or columns[-1] in MODEL_FEATURES:
        raise DatasetError("Dataset must end with an outcome label column")
    missing = [name for name in MODEL_FEATURES if name not in columns]
    if missing and len(columns) == len(MODEL_FEATURES) + 1:
        logger.info("Reading unnamed feature columns of {} in schema order", path)
        raw = raw.set_axis(MODEL_FEATURES + [columns[-1]], axis=1)
        columns = list(raw.columns)
    elif missing:
        raise DatasetError(f"Dataset is missing feature columns: {missing}")

    features = raw[MODEL_FEATURES].apply(pd.to_numeric, errors="coerce")
    frame = features.assign(**{LABEL_COLUMN: raw[columns[-1]]})
    incomplete = frame.isna().any(axis=1)
    if incomplete.any():
        logger.warning("Dropping {} incomplete rows from {}", int(incomplete.sum()), path)
        frame = frame[~incomplete]
    if frame.empty:
        raise DatasetError(f"Dataset {path} has no usable rows")

    frame = frame.assign(**{LABEL_COLUMN: [_normalize_label(value) for value in frame[LABEL_COLUMN]]})
    logger.info("Loaded {} labelled rows from {}", len(frame), path)
    return frame.reset_index(drop=True)


def save_uploaded_dataset(datasets_dir: Path, filename: str | None, content: bytes) -> Path:
    """Store an uploaded CSV under ``datasets_dir`` and return its path."""
    name = Path(filename or "").name
    if not name.lower().endswith(".csv"):
        raise DatasetError("Only CSV files are supported")
    if not content:
        raise DatasetError("Uploaded dataset is empty")
    datasets_dir = Path(datasets_dir)
    datasets_dir.mkdir(parents=True, exist_ok=True)
    target = datasets_dir / name
    target.write_bytes(content)
    logger.info("Stored uploaded dataset {} ({} bytes)", target, len(content))
    return target


def evaluate_model(
    frame: pd.DataFrame,
    folds: int = 10,
    n_estimators: int = 100,
    random_state: int = 42,
) -> Dict[str, float]:
    """Stratified cross-validation of a fresh classifier on ``frame``."""
    y = frame[LABEL_COLUMN].astype(int)
    smallest_class = int(y.value_counts().min()) if y.nunique() > 1 else 0
    n_splits = min(folds, smallest_class)
    if n_splits < 2:
        logger.warning("Not enough examples per class for cross-validation; skipping evaluation")
        return {}

    splitter = StratifiedKFold(n_splits=n_splits, shuffle=True, random_state=random_state)
    estimator = RandomForestClassifier(n_estimators=n_estimators, random_state=random_state, n_jobs=-1)
    scores = cross_validate(estimator, frame[MODEL_FEATURES].astype(float), y, cv=splitter, scoring=EVALUATION_SCORING)
    metrics = {name: float(scores[f"test_{name}"].mean()) for name in EVALUATION_SCORING}
    metrics["folds"] = float(n_splits)
    logger.info(
        "Cross-validated accuracy {:.4f}, weighted F1 {:.4f} over {} folds",
        metrics["accuracy"],
        metrics["f1_weighted"],
        n_splits,
    )
    return metrics


def build_model(frame: pd.DataFrame, source: str, config: Settings, evaluate: bool = True) -> TrainedModel:
    if frame[LABEL_COLUMN].nunique() < 2:
        raise TrainingError("Training data must contain both successful and failed matches")
    metrics = (
        evaluate_model(frame, config.cv_folds, config.n_estimators, config.random_seed) if evaluate else {}
    )
    return fit_frame(
        frame,
        source=source,
        n_estimators=config.n_estimators,
        random_state=config.random_seed,
        metrics=metrics,
    )


def train_from_csv(
    handle: ModelHandle,
    path: Path,
    config: Settings,
    evaluate: bool = True,
) -> TrainedModel:
    logger.info("Training compatibility model from {}", path)
    return handle.train(lambda: build_model(load_csv_dataset(path), "csv", config, evaluate))


def train_synthetic(
    handle: ModelHandle,
    config: Settings,
    size: int | None = None,
    force: bool = False,
    evaluate: bool = True,
) -> TrainedModel:
    size = size or config.synthetic_training_size

    def _build() -> TrainedModel:
        # Runs under the training lock so a concurrent CSV run cannot slip in.
        current = handle.current()
        if current is not None and not current.is_synthetic and not force:
            raise TrainingError(
                f"Refusing to replace model {current.version} trained on {current.source} data with synthetic data"
            )
        frame = generate_synthetic_dataset(size, seed=config.random_seed)
        return build_model(frame, "synthetic", config, evaluate)

    logger.warning("Training compatibility model on {} synthetic rows", size)
    return handle.train(_build)


def bootstrap_model(handle: ModelHandle, config: Settings) -> TrainedModel:
    """Return the current model, training one on cold start when allowed."""
    model = handle.current()
    if model is not None:
        return model

    dataset = config.default_dataset_path
    if dataset.exists():
        logger.info("No trained model found; training from default dataset {}", dataset)
        return handle.ensure(lambda: build_model(load_csv_dataset(dataset), "csv", config))

    if config.allow_synthetic_bootstrap:
        logger.warning(
            "No trained model or dataset found; bootstrapping on synthetic data. "
            "Predictions are low confidence until a real dataset is ingested."
        )
        return handle.ensure(
            lambda: build_model(
                generate_synthetic_dataset(config.synthetic_training_size, seed=config.random_seed),
                "synthetic",
                config,
            )
        )

    raise ModelNotTrainedError(
        f"No trained model at {handle.model_path} and no dataset at {dataset}; "
        "train one or enable allow_synthetic_bootstrap"
    )


def training_status(handle: ModelHandle) -> Dict[str, Any]:
    model = handle.current()
    status: Dict[str, Any] = {
        "model_trained": model is not None,
        "training_in_progress": handle.is_training,
        "model_path": str(handle.model_path),
    }
    if model is not None:
        status.update(model.describe())
        status["cold_start"] = model.is_synthetic
    return status


if __name__ == "__main__":
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Train the donor/patient compatibility model")
    parser.add_argument("--data", type=Path, default=settings.default_dataset_path, help="Path to training CSV")
    parser.add_argument("--synthetic", type=int, default=0, help="Train on N synthetic rows instead of a CSV")
    parser.add_argument("--output", type=Path, default=settings.model_path, help="Path to save trained model")
    parser.add_argument("--force", action="store_true", help="Allow synthetic data to replace a real model")
    parser.add_argument("--no-eval", action="store_true", help="Skip cross-validation")
    args = parser.parse_args()

    model_handle = ModelHandle(args.output)
    if args.synthetic:
        trained = train_synthetic(model_handle, settings, args.synthetic, args.force, not args.no_eval)
    else:
        trained = train_from_csv(model_handle, args.data, settings, not args.no_eval)
    print(f"Model saved to {args.output}")
    print(f"Model version: {trained.version} ({trained.source}, {trained.training_size} rows)")
    for name, value in trained.metrics.items():
        print(f"Validation {name}: {value:.4f}")
