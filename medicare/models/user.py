"""User and patient model definitions."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from medicare.database import Base

ROLES = ('patient', 'doctor', 'admin')


class User(Base):
    """Represents an application account."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    hashed_password = Column(String)
    first_name = Column(String, nullable=False, default='')
    last_name = Column(String, nullable=False, default='')
    phone = Column(String, nullable=True)
    role = Column(String, nullable=False)  # patient/doctor/admin
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    @property
    def full_name(self) -> str:
        return f'{self.first_name} {self.last_name}'.strip()


class Patient(Base):
    """Patient profile attached to a user account."""
    __tablename__ = "patients"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)

    user = relationship("User")
