from sqlalchemy import Column, Text
from compliance_docs.database import Base


# Read-only views of the back-office tables that documents can be attached to.


class Driver(Base):
    __tablename__ = "drivers"

    id = Column(Text, primary_key=True)
    full_name = Column(Text, nullable=False)
    license_number = Column(Text)
    status = Column(Text, nullable=False, default="pending")


class Vehicle(Base):
    __tablename__ = "vehicles"

    id = Column(Text, primary_key=True)
    plate_number = Column(Text, nullable=False)
    make = Column(Text)
    model = Column(Text)


class User(Base):
    __tablename__ = "users"

    id = Column(Text, primary_key=True)
    full_name = Column(Text, nullable=False)
    email = Column(Text, nullable=False)
    role = Column(Text, nullable=False, default="driver")
