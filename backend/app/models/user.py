import uuid
from sqlalchemy import Column, String, DateTime, Enum
import enum
from app.core.time_utils import get_utc_now
from app.db.base import Base

class UserRole(str, enum.Enum):
    ADMIN = 'admin'
    VOLUNTEER = 'volunteer'
    NDRF = 'ndrf'

class User(Base):
    """
    Principal credentials plus the profile mirrored for it (name, email, role).
    Profiles are written once at registration and never edited.
    """
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    name = Column(String(255), nullable=False)
    role = Column(Enum(UserRole, values_callable=lambda e: [m.value for m in e]), nullable=False)

    created_at = Column(DateTime(timezone=True), default=get_utc_now, nullable=False)
