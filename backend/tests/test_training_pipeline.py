import threading

import pandas as pd
import pytest

from organlink.ai.compatibility_model import LABEL_COLUMN, MODEL_FEATURES, train
from organlink.ai.model_handle import ModelHandle
from organlink.ai.synthetic_data import generate_synthetic_dataset, is_blood_type_compatible
from organlink.ai.train_matching import (
    bootstrap_model,
    evaluate_model,
    load_csv_dataset,
    save_uploaded_dataset,
    train_from_csv,
    train_synthetic,
    training_status,
)
from organlink.errors import DatasetError, ModelNotTrainedError, TrainingError, TrainingInProgressError


def _write_dataset(path, labels):
    rows = []
    for i, label in enumerate(labels):
        good = label in ("yes", "1", "success", "true")
        rows.append(
            {
                "patient_age": 20 + i % 40,
                "donor_age": 30 + i % 25,
                "blood_type_match": 1 if good else 0,
                "urgency_level": i % 5,
                "waiting_time_days": 10 * i,
                "policy_adjustment": 10 if good else 0,
                "outcome": label,
            }
        )
    pd.DataFrame(rows).to_csv(path, index=False)
    return path


def _tiny_model():
    examples = [([30, 40, 1, 2, 100, 0], True), ([60, 20, 0, 1, 5, 0], False)] * 5
    return train(examples, n_estimators=5, random_state=1)


def test_load_csv_normalizes_labels(tmp_path):
    path = _write_dataset(tmp_path / "data.csv", ["yes", "no", "Success", "failure", "1", "0"])
    frame = load_csv_dataset(path)
    assert list(frame.columns) == MODEL_FEATURES + [LABEL_COLUMN]
    assert list(frame[LABEL_COLUMN]) == [1, 0, 1, 0, 1, 0]


def test_load_csv_drops_incomplete_rows(tmp_path):
    path = _write_dataset(tmp_path / "data.csv", ["yes", "no", "yes"])
    raw = pd.read_csv(path)
    raw["donor_age"] = raw["donor_age"].astype(object)
    raw.loc[1, "donor_age"] = "unknown"
    raw.to_csv(path, index=False)
    assert len(load_csv_dataset(path)) == 2


def test_load_csv_missing_file(tmp_path):
    with pytest.raises(DatasetError):
        load_csv_dataset(tmp_path / "absent.csv")


def test_load_csv_missing_feature_column(tmp_path):
    path = _write_dataset(tmp_path / "data.csv", ["yes", "no"])
    pd.read_csv(path).drop(columns=["urgency_level"]).to_csv(path, index=False)
    with pytest.raises(DatasetError):
        load_csv_dataset(path)


def test_load_csv_unknown_label(tmp_path):
    path = _write_dataset(tmp_path / "data.csv", ["yes", "maybe"])
    with pytest.raises(DatasetError):
        load_csv_dataset(path)


def test_train_from_csv_publishes_model(tmp_path, settings):
    path = _write_dataset(tmp_path / "data.csv", ["yes", "no"] * 15)
    handle = ModelHandle(settings.model_path)

    model = train_from_csv(handle, path, settings)

    assert model.source == "csv"
    assert model.training_size == 30
    assert set(model.metrics) >= {"accuracy", "precision_weighted", "recall_weighted", "f1_weighted", "folds"}
    assert settings.model_path.exists()
    assert handle.current() is model
    assert ModelHandle(settings.model_path).current().version == model.version


def test_train_from_csv_single_class_is_reported(tmp_path, settings):
    path = _write_dataset(tmp_path / "data.csv", ["yes"] * 10)
    handle = ModelHandle(settings.model_path)
    with pytest.raises(TrainingError):
        train_from_csv(handle, path, settings)
    assert handle.current() is None


def test_evaluate_skips_when_classes_are_too_small():
    frame = pd.DataFrame([[1, 2, 1, 0, 3, 0, 1], [2, 3, 0, 1, 4, 0, 0]], columns=MODEL_FEATURES + [LABEL_COLUMN])
    assert evaluate_model(frame, folds=10, n_estimators=5) == {}


def test_synthetic_dataset_shape_and_labels():
    frame = generate_synthetic_dataset(300, seed=3)
    assert list(frame.columns[: len(MODEL_FEATURES)]) == MODEL_FEATURES
    assert frame.columns[-1] == LABEL_COLUMN
    assert set(frame[LABEL_COLUMN].unique()) == {0, 1}
    assert frame["patient_age"].between(18, 78).all()
    assert frame["donor_age"].between(20, 70).all()
    assert frame["urgency_level"].between(0, 4).all()
    assert frame.equals(generate_synthetic_dataset(300, seed=3))


def test_synthetic_dataset_rejects_empty_size():
    with pytest.raises(ValueError):
        generate_synthetic_dataset(0)


def test_blood_type_compatibility_rules():
    assert is_blood_type_compatible("O-", "B+")
    assert is_blood_type_compatible("A-", "AB+")
    assert is_blood_type_compatible("B+", "B+")
    assert not is_blood_type_compatible("A+", "B+")


def test_train_synthetic_marks_model_as_cold_start(settings):
    handle = ModelHandle(settings.model_path)
    model = train_synthetic(handle, settings, size=200, evaluate=False)
    assert model.is_synthetic
    status = training_status(handle)
    assert status["model_trained"] and status["cold_start"]
    assert status["source"] == "synthetic"


def test_train_synthetic_keeps_real_model_unless_forced(tmp_path, settings):
    handle = ModelHandle(settings.model_path)
    train_from_csv(handle, _write_dataset(tmp_path / "data.csv", ["yes", "no"] * 10), settings, evaluate=False)

    with pytest.raises(TrainingError):
        train_synthetic(handle, settings, size=100, evaluate=False)
    assert handle.current().source == "csv"

    assert train_synthetic(handle, settings, size=100, force=True, evaluate=False).is_synthetic


def test_bootstrap_without_any_source_fails(settings):
    with pytest.raises(ModelNotTrainedError):
        bootstrap_model(ModelHandle(settings.model_path), settings)


def test_bootstrap_prefers_default_dataset(settings):
    settings.datasets_dir.mkdir(parents=True)
    _write_dataset(settings.default_dataset_path, ["yes", "no"] * 10)
    model = bootstrap_model(ModelHandle(settings.model_path), settings.model_copy(update={"cv_folds": 2}))
    assert model.source == "csv"


def test_bootstrap_synthetic_requires_opt_in(settings):
    opted_in = settings.model_copy(update={"allow_synthetic_bootstrap": True})
    model = bootstrap_model(ModelHandle(settings.model_path), opted_in)
    assert model.is_synthetic
    assert settings.model_path.exists()


def test_status_without_model(settings):
    status = training_status(ModelHandle(settings.model_path))
    assert status == {
        "model_trained": False,
        "training_in_progress": False,
        "model_path": str(settings.model_path),
    }


def test_concurrent_training_is_refused_and_readers_keep_old_model(settings):
    old = _tiny_model()
    new = _tiny_model()
    handle = ModelHandle(settings.model_path, model=old)
    started = threading.Event()
    release = threading.Event()

    def slow_build():
        started.set()
        release.wait(5)
        return new

    worker = threading.Thread(target=handle.train, args=(slow_build,))
    worker.start()
    try:
        assert started.wait(5)
        assert handle.is_training
        assert handle.current() is old
        with pytest.raises(TrainingInProgressError):
            handle.train(_tiny_model)
    finally:
        release.set()
        worker.join(5)

    assert handle.current() is new
    assert not handle.is_training


def test_load_csv_accepts_legacy_attribute_names(tmp_path):
    path = _write_dataset(tmp_path / "legacy.csv", ["1", "0", "1", "0"])
    legacy = pd.read_csv(path).set_axis(
        ["PatientAge", "DonorAge", "BloodTypeMatch", "UrgencyLevel", "WaitingTime", "PolicyAdjustment", "class"],
        axis=1,
    )
    legacy.to_csv(path, index=False)

    frame = load_csv_dataset(path)

    assert list(frame.columns) == MODEL_FEATURES + [LABEL_COLUMN]
    assert list(frame[LABEL_COLUMN]) == [1, 0, 1, 0]
    assert list(frame["waiting_time_days"]) == [0, 10, 20, 30]


def test_load_csv_reads_unnamed_columns_in_schema_order(tmp_path):
    path = _write_dataset(tmp_path / "plain.csv", ["yes", "no"])
    plain = pd.read_csv(path).set_axis(["a", "b", "c", "d", "e", "f", "label"], axis=1)
    plain.to_csv(path, index=False)

    frame = load_csv_dataset(path)

    assert list(frame.columns) == MODEL_FEATURES + [LABEL_COLUMN]
    assert list(frame["patient_age"]) == [20, 21]
    assert list(frame[LABEL_COLUMN]) == [1, 0]


def test_save_uploaded_dataset(tmp_path):
    target = save_uploaded_dataset(tmp_path / "uploads", "../Organ_Transplant.csv", b"a,b\n1,0\n")
    assert target == tmp_path / "uploads" / "Organ_Transplant.csv"
    assert target.read_bytes() == b"a,b\n1,0\n"

    with pytest.raises(DatasetError):
        save_uploaded_dataset(tmp_path, "outcomes.xlsx", b"data")
    with pytest.raises(DatasetError):
        save_uploaded_dataset(tmp_path, "outcomes.csv", b"")


def test_train_synthetic_checks_real_model_under_the_training_lock(settings, monkeypatch):
    handle = ModelHandle(settings.model_path)
    real_model = _tiny_model()
    locked_train = handle.train

    def train_after_real_run(build, **kwargs):
        # A real-data run publishes after the caller decided to train.
        handle.publish(real_model)
        return locked_train(build, **kwargs)

    monkeypatch.setattr(handle, "train", train_after_real_run)

    with pytest.raises(TrainingError):
        train_synthetic(handle, settings, size=100, evaluate=False)
    assert handle.current() is real_model
