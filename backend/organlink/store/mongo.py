from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Type, TypeVar

from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import BaseModel
from pymongo.errors import PyMongoError

from ..errors import StoreError
from ..models import (
    AvailabilityStatus,
    Donor,
    Hospital,
    Match,
    MatchStatus,
    Notification,
    Patient,
    PatientStatus,
    Policy,
    PolicyStatus,
)
from ..utils.logging import log_db_error
from .base import RecordStore

ModelT = TypeVar("ModelT", bound=BaseModel)


def _encode(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, dict):
        return {key: _encode(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_encode(item) for item in value]
    return value


def to_document(model: BaseModel) -> Dict[str, Any]:
    return _encode(model.model_dump(by_alias=True))


def _decode(model_cls: Type[ModelT], document: Dict[str, Any] | None) -> Optional[ModelT]:
    if document is None:
        return None
    document["_id"] = str(document["_id"])
    return model_cls.model_validate(document)


class MongoRecordStore(RecordStore):
    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self.donors = db.get_collection("donors")
        self.patients = db.get_collection("patients")
        self.policies = db.get_collection("policies")
        self.hospitals = db.get_collection("hospitals")
        self.matches = db.get_collection("matches")
        self.notifications = db.get_collection("notifications")

    async def _find_one(self, collection, model_cls: Type[ModelT], query: Dict[str, Any], context: str) -> Optional[ModelT]:
        try:
            document = await collection.find_one(query)
        except PyMongoError as exc:  # pragma: no cover - requires external service
            log_db_error(context, exc)
            raise StoreError(f"{context} failed: {exc}") from exc
        return _decode(model_cls, document)

    async def _find_many(
        self,
        collection,
        model_cls: Type[ModelT],
        query: Dict[str, Any],
        context: str,
        sort: List[tuple] | None = None,
    ) -> List[ModelT]:
        try:
            cursor = collection.find(query)
            if sort:
                cursor = cursor.sort(sort)
            return [_decode(model_cls, document) async for document in cursor]
        except PyMongoError as exc:  # pragma: no cover - requires external service
            log_db_error(context, exc)
            raise StoreError(f"{context} failed: {exc}") from exc

    async def get_patient(self, patient_id: str) -> Optional[Patient]:
        return await self._find_one(self.patients, Patient, {"_id": patient_id}, "get_patient")

    async def get_donor(self, donor_id: str) -> Optional[Donor]:
        return await self._find_one(self.donors, Donor, {"_id": donor_id}, "get_donor")

    async def get_hospital(self, hospital_id: str) -> Optional[Hospital]:
        return await self._find_one(self.hospitals, Hospital, {"_id": hospital_id}, "get_hospital")

    async def find_donors_by_organ(self, organ: str, availability: AvailabilityStatus) -> List[Donor]:
        query = {"organ_types": organ, "availability_status": availability.value}
        return await self._find_many(self.donors, Donor, query, "find_donors_by_organ")

    async def find_implemented_policies(self, organ: str) -> List[Policy]:
        query = {"organ_type": organ, "status": PolicyStatus.IMPLEMENTED.value}
        return await self._find_many(self.policies, Policy, query, "find_implemented_policies")

    async def find_waiting_patients(self, hospital_id: str) -> List[Patient]:
        query = {"hospital_id": hospital_id, "status": PatientStatus.WAITING.value}
        return await self._find_many(self.patients, Patient, query, "find_waiting_patients")

    async def insert_matches(self, matches: List[Match]) -> List[Match]:
        if not matches:
            return matches
        try:
            await self.matches.insert_many([to_document(match) for match in matches])
        except PyMongoError as exc:  # pragma: no cover - requires external service
            log_db_error("insert_matches", exc)
            raise StoreError(f"insert_matches failed: {exc}") from exc
        return matches

    async def get_match(self, match_id: str) -> Optional[Match]:
        return await self._find_one(self.matches, Match, {"_id": match_id}, "get_match")

    async def save_match(self, match: Match) -> Match:
        try:
            await self.matches.replace_one({"_id": match.id}, to_document(match), upsert=True)
        except PyMongoError as exc:  # pragma: no cover - requires external service
            log_db_error("save_match", exc)
            raise StoreError(f"save_match failed: {exc}") from exc
        return match

    async def find_pending_match(self, patient_id: str, donor_id: str) -> Optional[Match]:
        query = {"patient_id": patient_id, "donor_id": donor_id, "status": MatchStatus.PENDING.value}
        return await self._find_one(self.matches, Match, query, "find_pending_match")

    async def find_matches(
        self,
        status: MatchStatus | None = None,
        hospital_id: str | None = None,
    ) -> List[Match]:
        query: Dict[str, Any] = {}
        if status is not None:
            query["status"] = status.value
        if hospital_id is not None:
            query["$or"] = [{"hospital_id": hospital_id}, {"donor_hospital_id": hospital_id}]
        return await self._find_many(self.matches, Match, query, "find_matches", sort=[("created_at", 1), ("_id", 1)])

    async def _update(self, collection, key: str, fields: Dict[str, Any], context: str) -> None:
        try:
            await collection.update_one({"_id": key}, {"$set": fields})
        except PyMongoError as exc:  # pragma: no cover - requires external service
            log_db_error(context, exc)
            raise StoreError(f"{context} failed: {exc}") from exc

    async def set_donor_availability(self, donor_id: str, availability: AvailabilityStatus) -> None:
        await self._update(self.donors, donor_id, {"availability_status": availability.value}, "set_donor_availability")

    async def set_patient_status(self, patient_id: str, status: PatientStatus) -> None:
        await self._update(self.patients, patient_id, {"status": status.value}, "set_patient_status")

    async def insert_notification(self, notification: Notification) -> Notification:
        try:
            await self.notifications.insert_one(to_document(notification))
        except PyMongoError as exc:  # pragma: no cover - requires external service
            log_db_error("insert_notification", exc)
            raise StoreError(f"insert_notification failed: {exc}") from exc
        return notification
