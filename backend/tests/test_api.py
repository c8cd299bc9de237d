import pytest
from fastapi.testclient import TestClient

from organlink import main
from organlink.ai.model_handle import ModelHandle
from organlink.errors import ModelLoadError, NotificationError, StoreError
from organlink.main import create_app, status_for
from organlink.matching.engine import MatchingEngine
from organlink.store.memory import InMemoryRecordStore

from conftest import make_patient


@pytest.fixture
def client(engine):
    with TestClient(create_app(engine)) as test_client:
        yield test_client


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_find_matches_and_lifecycle(client, store):
    response = client.post("/api/v1/ai/find-matches/P1")
    assert response.status_code == 200
    body = response.json()
    assert body["count"] == 2
    match_id = body["matches"][0]["_id"]
    assert body["matches"][0]["status"] == "PENDING"

    assert client.get(f"/api/v1/ai/matches/{match_id}").json()["donor_id"] == body["matches"][0]["donor_id"]

    accepted = client.post(f"/api/v1/ai/matches/{match_id}/accept")
    assert accepted.status_code == 200
    assert accepted.json()["status"] == "ACCEPTED"

    conflict = client.post(f"/api/v1/ai/matches/{match_id}/accept")
    assert conflict.status_code == 409
    assert conflict.json()["error"] == "InvalidTransitionError"

    cancelled = client.post(f"/api/v1/ai/matches/{match_id}/cancel", json={"reason": "logistics"})
    assert cancelled.json()["cancellation_reason"] == "logistics"


def test_reject_without_body(client):
    match_id = client.post("/api/v1/ai/find-matches/P1").json()["matches"][1]["_id"]
    response = client.post(f"/api/v1/ai/matches/{match_id}/reject")
    assert response.status_code == 200
    assert response.json()["status"] == "REJECTED"


def test_unknown_records_are_404(client):
    assert client.post("/api/v1/ai/find-matches/P404").status_code == 404
    assert client.get("/api/v1/ai/matches/MATCH-0").status_code == 404


def test_hospital_routes(client):
    trigger = client.post("/api/v1/ai/hospitals/H1/trigger-matching")
    assert trigger.json() == {"hospital_id": "H1", "matches_found": 2}
    listed = client.get("/api/v1/ai/hospitals/H2/matches").json()
    assert {match["donor_id"] for match in listed["matches"]} == {"D0", "D2"}
    assert client.post("/api/v1/ai/matches/expire").json()["expired"] == 0


def test_training_status_and_prediction(client):
    status = client.get("/api/v1/ai/training/status").json()
    assert status["model_trained"] is True

    prediction = client.post(
        "/api/v1/ai/training/test-prediction",
        json={"features": [30, 46, 1, 2, 10, 0]},
    ).json()
    assert prediction["match_probability"] == pytest.approx(0.9)
    assert prediction["meets_threshold"] is True


def test_bad_prediction_vector_is_422(client):
    response = client.post("/api/v1/ai/training/test-prediction", json={"features": [1, 2]})
    assert response.status_code == 422
    assert response.json()["error"] == "FeatureSchemaMismatchError"


def test_missing_dataset_is_400(client, tmp_path):
    response = client.post("/api/v1/ai/training/train-with-csv", json={"path": str(tmp_path / "none.csv")})
    assert response.status_code == 400


def test_cold_start_disabled_is_503(settings, hospitals, donors):
    store = InMemoryRecordStore(donors=donors, patients=[make_patient()], hospitals=hospitals)
    engine = MatchingEngine(store, ModelHandle(settings.model_path), settings)
    with TestClient(create_app(engine)) as client:
        response = client.post("/api/v1/ai/find-matches/P1")
    assert response.status_code == 503
    assert response.json()["error"] == "ModelNotTrainedError"


def test_persistence_errors_map_to_503():
    assert status_for(StoreError("down")) == 503
    assert status_for(NotificationError("down")) == 503


def _outcomes_csv(rows=20):
    lines = ["PatientAge,DonorAge,BloodTypeMatch,UrgencyLevel,WaitingTime,PolicyAdjustment,class"]
    for i in range(rows):
        good = i % 2
        lines.append(f"{30 + i},{40 + i % 7},{good},{i % 5},{15 * i},{10 * good},{good}")
    return ("\n".join(lines) + "\n").encode()


def test_uploaded_dataset_becomes_the_default_training_set(client, settings):
    response = client.post(
        "/api/v1/ai/training/upload-dataset",
        files={"file": ("Organ_Transplant.csv", _outcomes_csv(), "text/csv")},
    )
    assert response.status_code == 200
    body = response.json()
    assert body["path"] == str(settings.default_dataset_path)
    assert body["size"] == len(_outcomes_csv())
    assert settings.default_dataset_path.read_bytes() == _outcomes_csv()

    trained = client.post("/api/v1/ai/training/train-with-csv", json={"evaluate": False})
    assert trained.status_code == 200
    assert trained.json()["source"] == "csv"
    assert trained.json()["training_size"] == 20


def test_upload_rejects_other_files(client, settings):
    not_csv = client.post(
        "/api/v1/ai/training/upload-dataset",
        files={"file": ("outcomes.xlsx", b"PK\x03\x04", "application/octet-stream")},
    )
    assert not_csv.status_code == 400
    empty = client.post("/api/v1/ai/training/upload-dataset", files={"file": ("outcomes.csv", b"", "text/csv")})
    assert empty.status_code == 400
    assert not settings.datasets_dir.exists()


def test_accepting_a_second_match_for_a_taken_donor_is_409(client, store):
    store.patients["P2"] = make_patient("P2", first_name="Ravi")
    first = client.post("/api/v1/ai/find-matches/P1").json()["matches"][0]
    second = client.post("/api/v1/ai/find-matches/P2").json()["matches"][0]
    assert first["donor_id"] == second["donor_id"] == "D0"

    assert client.post(f"/api/v1/ai/matches/{first['_id']}/accept").status_code == 200
    conflict = client.post(f"/api/v1/ai/matches/{second['_id']}/accept")
    assert conflict.status_code == 409
    assert conflict.json()["error"] == "DonorUnavailableError"
    assert client.get(f"/api/v1/ai/matches/{second['_id']}").json()["status"] == "PENDING"


def test_unreadable_model_maps_to_503():
    assert status_for(ModelLoadError("truncated artifact")) == 503


def test_run_serves_the_app(monkeypatch):
    calls = []
    monkeypatch.setattr(main.uvicorn, "run", lambda app, **kwargs: calls.append((app, kwargs)))
    main.run()
    assert calls == [("organlink.main:app", {"host": main.settings.api_host, "port": main.settings.api_port})]
