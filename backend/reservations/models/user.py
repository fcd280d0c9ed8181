"""User ORM model — identity plus the role consumed by the permission oracle."""
import uuid
import enum
from sqlalchemy import Column, String, DateTime
from sqlalchemy.sql import func

from reservations.database import Base


class UserRole(str, enum.Enum):
    viewer = "viewer"
    requester = "requester"
    approver = "approver"
    admin = "admin"


class User(Base):
    __tablename__ = "users"

    user_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    display_name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=False, unique=True)
    role = Column(String(20), nullable=False, default=UserRole.requester.value)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
