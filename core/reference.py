"""
Reference data lookups.

Patients, doctors, departments and locations are maintained elsewhere. The
workflow only needs to know that an id resolves to a live record.
"""

from typing import Any
from uuid import UUID

from clients.postgres_client import PostgresClient
from core.errors import NotFoundError

# entity label -> table
_TABLES = {
    "Patient": "patients",
    "Doctor": "doctors",
    "Department": "departments",
    "Location": "locations",
}


class ReferenceLookup:
    """Resolves reference ids, raising NotFoundError for unknown ones."""

    def __init__(self, postgres: PostgresClient):
        self.postgres = postgres

    def _resolve(self, entity: str, entity_id: UUID) -> dict[str, Any]:
        row = self.postgres.execute_single(
            f"SELECT * FROM {_TABLES[entity]} WHERE id = %s",
            (entity_id,)
        )
        if row is None:
            raise NotFoundError(entity, entity_id)
        return row

    def resolve_patient(self, patient_id: UUID) -> dict[str, Any]:
        return self._resolve("Patient", patient_id)

    def resolve_doctor(self, doctor_id: UUID) -> dict[str, Any]:
        return self._resolve("Doctor", doctor_id)

    def resolve_department(self, department_id: UUID) -> dict[str, Any]:
        return self._resolve("Department", department_id)

    def resolve_location(self, location_id: UUID) -> dict[str, Any]:
        return self._resolve("Location", location_id)

    def resolve_context(self, department_id: UUID, doctor_id: UUID, location_id: UUID) -> None:
        """Resolve a department/doctor/location triple."""
        self.resolve_department(department_id)
        self.resolve_doctor(doctor_id)
        self.resolve_location(location_id)
