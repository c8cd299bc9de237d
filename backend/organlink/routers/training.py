from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List

from fastapi import APIRouter, File, UploadFile
from pydantic import BaseModel, Field

from .matching import Engine

router = APIRouter(prefix="/api/v1/ai/training", tags=["training"])


class CsvTrainingRequest(BaseModel):
    path: str | None = None
    evaluate: bool = True


class SyntheticTrainingRequest(BaseModel):
    size: int | None = Field(default=None, gt=0)
    force: bool = False


class PredictionRequest(BaseModel):
    features: Dict[str, float] | List[float]


@router.post("/upload-dataset")
async def upload_dataset(engine: Engine, file: UploadFile = File(...)) -> Dict[str, Any]:
    content = await file.read()
    path = await engine.upload_dataset(file.filename, content)
    return {"status": "uploaded", "path": str(path), "size": len(content)}


@router.post("/train-with-csv")
async def train_with_csv(engine: Engine, payload: CsvTrainingRequest | None = None) -> Dict[str, Any]:
    payload = payload or CsvTrainingRequest()
    path = Path(payload.path) if payload.path else None
    model = await engine.train_from_csv(path, payload.evaluate)
    return {"status": "trained", **model.describe()}


@router.post("/train-synthetic")
async def train_synthetic(engine: Engine, payload: SyntheticTrainingRequest | None = None) -> Dict[str, Any]:
    payload = payload or SyntheticTrainingRequest()
    model = await engine.train_synthetic(payload.size, payload.force)
    return {"status": "trained", **model.describe()}


@router.post("/test-prediction")
async def test_prediction(payload: PredictionRequest, engine: Engine) -> Dict[str, Any]:
    probability = await engine.predict_match_success(payload.features)
    return {
        "match_probability": probability,
        "meets_threshold": probability >= engine.config.matching_threshold,
        "threshold": engine.config.matching_threshold,
    }


@router.get("/status")
async def training_status(engine: Engine) -> Dict[str, Any]:
    return await engine.training_status()
