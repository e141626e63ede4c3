import uuid
from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, Enum, Text
from sqlalchemy.orm import relationship
import enum

from app.core.time_utils import get_utc_now
from app.db.base import Base


def _values(enum_cls):
    # Persist the lowercase wire values ("in-progress"), not the member names
    return [member.value for member in enum_cls]


class DisasterType(str, enum.Enum):
    FLOOD = 'flood'
    FIRE = 'fire'
    EARTHQUAKE = 'earthquake'
    HURRICANE = 'hurricane'
    TSUNAMI = 'tsunami'
    LANDSLIDE = 'landslide'
    CHEMICAL = 'chemical'
    BIOLOGICAL = 'biological'
    NUCLEAR = 'nuclear'
    OTHER = 'other'

class ReportStatus(str, enum.Enum):
    PENDING = 'pending'
    ASSIGNED = 'assigned'
    DISPATCHED = 'dispatched'
    IN_PROGRESS = 'in-progress'
    RESOLVED = 'resolved'

class AssignedTo(str, enum.Enum):
    UNASSIGNED = 'unassigned'
    VOLUNTEER = 'volunteer'
    NDRF = 'ndrf'

class ImagePhase(str, enum.Enum):
    INITIAL = 'initial'
    RESPONSE = 'response'


class Report(Base):
    __tablename__ = "reports"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    disaster_type = Column(Enum(DisasterType, values_callable=_values), nullable=False, index=True)
    location = Column(String(512), nullable=False)
    description = Column(Text, nullable=False)

    status = Column(Enum(ReportStatus, values_callable=_values), default=ReportStatus.PENDING, nullable=False, index=True)
    assigned_to = Column(Enum(AssignedTo, values_callable=_values), default=AssignedTo.UNASSIGNED, nullable=False, index=True)
    assigned_user_id = Column(String(36), nullable=True)

    created_at = Column(DateTime(timezone=True), default=get_utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=get_utc_now, nullable=False)

    images = relationship(
        "ReportImage",
        back_populates="report",
        order_by="ReportImage.seq",
        cascade="all, delete-orphan",
    )
    notes = relationship("ResponseNote", back_populates="report", cascade="all, delete-orphan")


class ReportImage(Base):
    """
    One uploaded image per row. Appending evidence is a plain INSERT, so two
    concurrent uploaders can never overwrite each other's URL.
    """
    __tablename__ = "report_images"

    seq = Column(Integer, primary_key=True, autoincrement=True)
    report_id = Column(String(36), ForeignKey("reports.id"), nullable=False, index=True)
    phase = Column(Enum(ImagePhase, values_callable=_values), nullable=False)
    url = Column(String(1024), nullable=False)

    uploaded_at = Column(DateTime(timezone=True), default=get_utc_now, nullable=False)

    report = relationship("Report", back_populates="images")


class ResponseNote(Base):
    __tablename__ = "response_notes"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    report_id = Column(String(36), ForeignKey("reports.id"), nullable=False, index=True)
    user_id = Column(String(36), nullable=False)
    user_name = Column(String(255), nullable=False)  # denormalized at write time
    text = Column(Text, nullable=False)

    timestamp = Column(DateTime(timezone=True), default=get_utc_now, nullable=False, index=True)

    report = relationship("Report", back_populates="notes")
