from compliance_docs.models.document import DocumentRecord
from compliance_docs.models.entity import Driver, Vehicle, User

__all__ = ["DocumentRecord", "Driver", "Vehicle", "User"]
