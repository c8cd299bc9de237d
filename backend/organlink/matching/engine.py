from __future__ import annotations

import asyncio
from datetime import date, datetime, timezone
from functools import partial
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, TypedDict

from langgraph.graph import END, StateGraph
from loguru import logger

from ..ai import train_matching
from ..ai.compatibility_model import TrainedModel
from ..ai.model_handle import ModelHandle
from ..database import Settings
from ..errors import OrganLinkError, PatientNotFoundError
from ..models import AvailabilityStatus, Donor, Match, MatchStatus, Patient, Policy
from ..store.base import RecordStore
from ..utils.notifications import NotificationService
from .features import build_feature_row
from .lifecycle import MatchLifecycleManager
from .ranking import ScoredCandidate, rank_candidates


class MatchingState(TypedDict):
    patient_id: str
    today: date
    now: datetime
    patient: Optional[Patient]
    donors: List[Donor]
    policies: List[Policy]
    model: Optional[TrainedModel]
    scored: List[ScoredCandidate]
    ranked: List[ScoredCandidate]
    matches: List[Match]


class MatchingEngine:
    """Runs the per-patient matching workflow and exposes the lifecycle and training operations."""

    def __init__(
        self,
        store: RecordStore,
        model_handle: ModelHandle,
        config: Settings,
        lifecycle: MatchLifecycleManager | None = None,
    ) -> None:
        self.store = store
        self.model_handle = model_handle
        self.config = config
        self.lifecycle = lifecycle or MatchLifecycleManager(store, NotificationService(store), config)
        self.graph = self._build_graph()

    def _build_graph(self):
        graph = StateGraph(MatchingState)
        graph.add_node("load_patient", self._load_patient)
        graph.add_node("find_candidates", self._find_candidates)
        graph.add_node("score", self._score)
        graph.add_node("rank", self._rank)
        graph.add_node("persist", self._persist)

        graph.add_edge("load_patient", "find_candidates")
        graph.add_conditional_edges("find_candidates", self._candidates_condition, {"empty": END, "score": "score"})
        graph.add_edge("score", "rank")
        graph.add_edge("rank", "persist")
        graph.add_edge("persist", END)

        graph.set_entry_point("load_patient")
        return graph.compile()

    async def _run_blocking(self, func, *args, **kwargs):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, partial(func, *args, **kwargs))

    async def current_model(self) -> TrainedModel:
        """The published model, trained on cold start when a source is available."""
        return await self._run_blocking(train_matching.bootstrap_model, self.model_handle, self.config)

    async def _load_patient(self, state: MatchingState) -> MatchingState:
        patient = await self.store.get_patient(state["patient_id"])
        if patient is None:
            raise PatientNotFoundError(state["patient_id"])
        return {**state, "patient": patient}

    async def _find_candidates(self, state: MatchingState) -> MatchingState:
        patient = state["patient"]
        donors = await self.store.find_donors_by_organ(patient.organ_needed, AvailabilityStatus.AVAILABLE)
        policies = await self.store.find_implemented_policies(patient.organ_needed) if donors else []
        logger.info("Found {} candidate donors for patient {} ({})", len(donors), patient.id, patient.organ_needed)
        return {**state, "donors": donors, "policies": policies}

    def _candidates_condition(self, state: MatchingState) -> str:
        return "score" if state["donors"] else "empty"

    async def _score(self, state: MatchingState) -> MatchingState:
        patient = state["patient"]
        rows = [
            build_feature_row(patient, donor, state["policies"], state["today"])
            for donor in state["donors"]
        ]
        model = await self.current_model()
        probabilities = await self._run_blocking(model.predict_proba, rows)
        scored = [
            ScoredCandidate(donor=donor, probability=float(probability), features=row)
            for donor, row, probability in zip(state["donors"], rows, probabilities)
        ]
        return {**state, "model": model, "scored": scored}

    async def _rank(self, state: MatchingState) -> MatchingState:
        ranked = rank_candidates(state["scored"], self.config.matching_threshold, self.config.max_matches)
        logger.info(
            "Kept {} of {} candidates for patient {} at threshold {}",
            len(ranked),
            len(state["scored"]),
            state["patient_id"],
            self.config.matching_threshold,
        )
        return {**state, "ranked": ranked}

    async def _persist(self, state: MatchingState) -> MatchingState:
        matches = await self.lifecycle.create_pending(state["patient"], state["ranked"], state["model"], state["now"])
        return {**state, "matches": matches}

    async def find_best_matches_for_patient(self, patient_id: str, today: date | None = None) -> List[Match]:
        """Score every available donor for the patient's organ and persist the best as PENDING matches."""
        now = datetime.now(timezone.utc)
        initial_state: MatchingState = {
            "patient_id": patient_id,
            "today": today or now.date(),
            "now": now,
            "patient": None,
            "donors": [],
            "policies": [],
            "model": None,
            "scored": [],
            "ranked": [],
            "matches": [],
        }
        state = await self.graph.ainvoke(initial_state)
        return state["matches"]

    async def find_matches_for_patient(self, patient_id: str, today: date | None = None) -> List[Match]:
        return await self.find_best_matches_for_patient(patient_id, today)

    async def trigger_matching_for_hospital(self, hospital_id: str) -> int:
        patients = await self.store.find_waiting_patients(hospital_id)
        logger.info("Triggering matching for {} waiting patients of hospital {}", len(patients), hospital_id)
        total = 0
        for patient in patients:
            try:
                total += len(await self.find_best_matches_for_patient(patient.id))
            except OrganLinkError as exc:
                logger.error("Matching failed for patient {}: {}", patient.id, exc)
        return total

    async def predict_match_success(self, features: Sequence[float] | Mapping[str, float]) -> float:
        model = await self.current_model()
        probabilities = await self._run_blocking(model.predict_proba, [features])
        return float(probabilities[0])

    async def train_from_csv(self, path: Path | None = None, evaluate: bool = True) -> TrainedModel:
        path = path or self.config.default_dataset_path
        return await self._run_blocking(train_matching.train_from_csv, self.model_handle, path, self.config, evaluate)

    async def upload_dataset(self, filename: str | None, content: bytes) -> Path:
        return await self._run_blocking(
            train_matching.save_uploaded_dataset, self.config.datasets_dir, filename, content
        )

    async def train_synthetic(self, size: int | None = None, force: bool = False) -> TrainedModel:
        return await self._run_blocking(
            train_matching.train_synthetic, self.model_handle, self.config, size, force
        )

    async def training_status(self) -> Dict[str, Any]:
        return await self._run_blocking(train_matching.training_status, self.model_handle)

    async def get_match(self, match_id: str) -> Match:
        return await self.lifecycle.get(match_id)

    async def get_matches_for_hospital(self, hospital_id: str, status: MatchStatus | None = None) -> List[Match]:
        return await self.lifecycle.matches_for_hospital(hospital_id, status)

    async def accept_match(self, match_id: str) -> Match:
        return await self.lifecycle.accept(match_id)

    async def reject_match(self, match_id: str, reason: str | None = None) -> Match:
        return await self.lifecycle.reject(match_id, reason)

    async def complete_match(self, match_id: str) -> Match:
        return await self.lifecycle.complete(match_id)

    async def cancel_match(self, match_id: str, reason: str | None = None) -> Match:
        return await self.lifecycle.cancel(match_id, reason)

    async def expire_stale_matches(self, now: datetime | None = None) -> List[Match]:
        return await self.lifecycle.expire_stale(now)
