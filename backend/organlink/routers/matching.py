from __future__ import annotations

from typing import Annotated, Any, Dict

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from ..matching.engine import MatchingEngine
from ..schemas.match import match_document

router = APIRouter(prefix="/api/v1/ai", tags=["matching"])


def init_router(engine: MatchingEngine) -> None:
    router.engine = engine


def get_engine() -> MatchingEngine:
    return router.engine


Engine = Annotated[MatchingEngine, Depends(get_engine)]


class ReasonRequest(BaseModel):
    reason: str | None = None


@router.post("/find-matches/{patient_id}")
async def find_matches(patient_id: str, engine: Engine) -> Dict[str, Any]:
    matches = await engine.find_best_matches_for_patient(patient_id)
    return {
        "patient_id": patient_id,
        "count": len(matches),
        "matches": [match_document(match) for match in matches],
    }


@router.get("/matches/{match_id}")
async def get_match(match_id: str, engine: Engine) -> Dict[str, Any]:
    return match_document(await engine.get_match(match_id))


@router.post("/matches/expire")
async def expire_matches(engine: Engine) -> Dict[str, Any]:
    expired = await engine.expire_stale_matches()
    return {"expired": len(expired), "matches": [match_document(match) for match in expired]}


@router.post("/matches/{match_id}/accept")
async def accept_match(match_id: str, engine: Engine) -> Dict[str, Any]:
    return match_document(await engine.accept_match(match_id))


@router.post("/matches/{match_id}/reject")
async def reject_match(match_id: str, engine: Engine, payload: ReasonRequest | None = None) -> Dict[str, Any]:
    reason = payload.reason if payload else None
    return match_document(await engine.reject_match(match_id, reason))


@router.post("/matches/{match_id}/complete")
async def complete_match(match_id: str, engine: Engine) -> Dict[str, Any]:
    return match_document(await engine.complete_match(match_id))


@router.post("/matches/{match_id}/cancel")
async def cancel_match(match_id: str, engine: Engine, payload: ReasonRequest | None = None) -> Dict[str, Any]:
    reason = payload.reason if payload else None
    return match_document(await engine.cancel_match(match_id, reason))


@router.get("/hospitals/{hospital_id}/matches")
async def hospital_matches(hospital_id: str, engine: Engine) -> Dict[str, Any]:
    matches = await engine.get_matches_for_hospital(hospital_id)
    return {"hospital_id": hospital_id, "matches": [match_document(match) for match in matches]}


@router.post("/hospitals/{hospital_id}/trigger-matching")
async def trigger_matching(hospital_id: str, engine: Engine) -> Dict[str, Any]:
    total = await engine.trigger_matching_for_hospital(hospital_id)
    return {"hospital_id": hospital_id, "matches_found": total}
