from dataclasses import dataclass
from typing import ClassVar

from compliance_docs.errors import BadRequestError


@dataclass(frozen=True)
class DriverRef:
    id: str
    kind: ClassVar[str] = "driver"


@dataclass(frozen=True)
class VehicleRef:
    id: str
    kind: ClassVar[str] = "vehicle"


@dataclass(frozen=True)
class UserRef:
    id: str
    kind: ClassVar[str] = "user"


EntityRef = DriverRef | VehicleRef | UserRef

_REF_TYPES: dict[str, type] = {ref.kind: ref for ref in (DriverRef, VehicleRef, UserRef)}
ENTITY_TYPES = tuple(_REF_TYPES)


def entity_ref(entity_type: str, entity_id: str) -> EntityRef:
    """Build the reference variant named by ``entity_type``."""
    ref_type = _REF_TYPES.get((entity_type or "").strip().lower())
    if ref_type is None:
        raise BadRequestError(
            f"Invalid entity type '{entity_type}'. Must be one of: {', '.join(ENTITY_TYPES)}"
        )
    if not entity_id:
        raise BadRequestError("entity_id is required")
    return ref_type(id=str(entity_id))
