"""Typed, versioned shapes for the JSON maps stored on a document record.

Each document type registers the model its caller metadata is validated
against. Unknown keys are kept (``extra="allow"``) so workers and clients can
add fields without a schema bump, but the keys a model declares are
type-checked and a mismatch is rejected as a bad request.
"""

from datetime import date
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from compliance_docs.errors import BadRequestError

METADATA_SCHEMA_VERSION = 1


class DocumentMetadata(BaseModel):
    model_config = ConfigDict(extra="allow")

    schema_version: int = METADATA_SCHEMA_VERSION
    issue_date: date | None = None
    expiry_date: date | None = None
    issuing_authority: str | None = None
    description: str | None = None


class DriverLicenseMetadata(DocumentMetadata):
    license_number: str | None = None
    category: str | None = None


class VehicleRegistrationMetadata(DocumentMetadata):
    plate_number: str | None = None
    chassis_number: str | None = None


class InsuranceCertificateMetadata(DocumentMetadata):
    policy_number: str | None = None
    insurer: str | None = None


class NationalIdMetadata(DocumentMetadata):
    id_number: str | None = None


class InspectionReportMetadata(DocumentMetadata):
    inspector: str | None = None
    passed: bool | None = None


METADATA_MODELS: dict[str, type[DocumentMetadata]] = {
    "driver_license": DriverLicenseMetadata,
    "vehicle_registration": VehicleRegistrationMetadata,
    "insurance_certificate": InsuranceCertificateMetadata,
    "national_id": NationalIdMetadata,
    "inspection_report": InspectionReportMetadata,
}


class ProcessingMetadata(BaseModel):
    model_config = ConfigDict(extra="allow")

    schema_version: int = METADATA_SCHEMA_VERSION
    status: str | None = None
    progress: int | None = Field(default=None, ge=0, le=100)
    result: str | None = None
    last_updated: str | None = None


def _dump(model: BaseModel) -> dict[str, Any]:
    return model.model_dump(mode="json", exclude_none=True)


def validate_metadata(document_type: str, data: dict[str, Any] | None) -> dict[str, Any]:
    model = METADATA_MODELS.get(document_type, DocumentMetadata)
    try:
        return _dump(model.model_validate(data or {}))
    except ValidationError as exc:
        raise BadRequestError(f"Invalid metadata for {document_type}: {exc.errors()[0]['msg']}") from exc


def merge_metadata(document_type: str, current: dict[str, Any] | None, patch: dict[str, Any] | None) -> dict[str, Any]:
    """Shallow-merge ``patch`` over ``current`` and re-validate the result."""
    merged = {**(current or {}), **(patch or {})}
    return validate_metadata(document_type, merged)


def merge_processing_metadata(current: dict[str, Any] | None, patch: dict[str, Any]) -> dict[str, Any]:
    merged = {**(current or {}), **patch}
    try:
        return _dump(ProcessingMetadata.model_validate(merged))
    except ValidationError as exc:
        raise BadRequestError(f"Invalid processing metadata: {exc.errors()[0]['msg']}") from exc
