from sqlalchemy.orm import Session

from compliance_docs.errors import NotFoundError
from compliance_docs.models.entity import Driver, User, Vehicle
from compliance_docs.schemas.entity import DriverRef, EntityRef, UserRef, VehicleRef

_ENTITY_MODELS = {
    DriverRef: (Driver, "Driver not found"),
    VehicleRef: (Vehicle, "Vehicle not found"),
    UserRef: (User, "User not found"),
}


class EntityValidator:
    def __init__(self, db: Session):
        self.db = db

    def exists(self, ref: EntityRef) -> bool:
        model, _ = _ENTITY_MODELS[type(ref)]
        return self.db.query(model.id).filter(model.id == ref.id).first() is not None

    def ensure_exists(self, ref: EntityRef) -> None:
        if not self.exists(ref):
            raise NotFoundError(_ENTITY_MODELS[type(ref)][1])

    def get_user(self, user_id: str | None) -> User | None:
        if not user_id:
            return None
        return self.db.query(User).filter(User.id == user_id).first()
