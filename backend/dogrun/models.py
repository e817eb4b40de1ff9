import uuid
import sqlalchemy as sa
from sqlalchemy import (
    Column,
    String,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    JSON,
    Integer,
    Text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from datetime import datetime, timezone

from .database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    __tablename__ = "users"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String, unique=True, nullable=False)
    hashed_password = Column(String, nullable=False)
    full_name = Column(String)
    is_admin = Column(Boolean, default=False)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=_utcnow)

    dogs = relationship("Dog", back_populates="owner")
    parks = relationship("DogPark", back_populates="owner")
    notifications = relationship(
        "Notification", back_populates="user", cascade="all, delete-orphan"
    )


class Dog(Base):
    __tablename__ = "dogs"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    owner_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    name = Column(String, nullable=False)
    breed = Column(String)
    created_at = Column(DateTime, default=_utcnow)

    owner = relationship("User", back_populates="dogs")
    vaccine_certifications = relationship(
        "VaccineCertification",
        back_populates="dog",
        cascade="all, delete-orphan",
    )


class DogPark(Base):
    __tablename__ = "dog_parks"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    owner_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    name = Column(String, nullable=False)
    address = Column(String, nullable=False)
    # pending, first_stage_passed, second_stage_waiting, second_stage_review,
    # smart_lock_testing, approved, rejected
    status = Column(String, default="pending", nullable=False, index=True)
    description = Column(Text)
    price = Column(Integer, default=0)
    max_capacity = Column(Integer, default=0)
    large_dog_area = Column(Boolean, default=False)
    small_dog_area = Column(Boolean, default=False)
    private_booths = Column(Boolean, default=False)
    private_booth_count = Column(Integer, default=0)
    facilities = Column(JSON, default=dict)
    approved_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)

    owner = relationship("User", back_populates="parks")
    images = relationship(
        "DogParkFacilityImage",
        back_populates="park",
        cascade="all, delete-orphan",
        order_by="DogParkFacilityImage.created_at",
    )
    review_stage = relationship(
        "DogParkReviewStage",
        back_populates="park",
        uselist=False,
        cascade="all, delete-orphan",
    )
    review_events = relationship(
        "DogParkReviewEvent",
        back_populates="park",
        cascade="all, delete-orphan",
        order_by="DogParkReviewEvent.created_at",
    )


class DogParkReviewStage(Base):
    __tablename__ = "dog_park_review_stages"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    park_id = Column(
        UUID(as_uuid=True),
        ForeignKey("dog_parks.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    first_stage_passed_at = Column(DateTime, nullable=True)
    second_stage_submitted_at = Column(DateTime, nullable=True)
    rejected_at = Column(DateTime, nullable=True)
    rejection_reason = Column(Text, nullable=True)
    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)

    park = relationship("DogPark", back_populates="review_stage")


class DogParkReviewEvent(Base):
    __tablename__ = "dog_park_review_events"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    park_id = Column(
        UUID(as_uuid=True),
        ForeignKey("dog_parks.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    actor_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    decision = Column(String, nullable=False)
    from_status = Column(String, nullable=False)
    to_status = Column(String, nullable=False)
    note = Column(Text, nullable=True)
    created_at = Column(DateTime, default=_utcnow)

    park = relationship("DogPark", back_populates="review_events")
    actor = relationship("User")


class DogParkFacilityImage(Base):
    __tablename__ = "dog_park_facility_images"
    __table_args__ = (
        sa.UniqueConstraint("park_id", "image_type"),
    )
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    park_id = Column(
        UUID(as_uuid=True),
        ForeignKey("dog_parks.id", ondelete="CASCADE"),
        nullable=False,
    )
    image_type = Column(String, nullable=False)
    image_url = Column(String, nullable=False)
    approval = Column(String, default="pending", nullable=False)  # pending, approved, rejected
    admin_notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)

    park = relationship("DogPark", back_populates="images")


class VaccineCertification(Base):
    __tablename__ = "vaccine_certifications"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    dog_id = Column(
        UUID(as_uuid=True),
        ForeignKey("dogs.id", ondelete="CASCADE"),
        nullable=False,
    )
    rabies_vaccine_image = Column(String, nullable=True)
    combo_vaccine_image = Column(String, nullable=True)
    status = Column(String, default="pending", nullable=False)  # pending, approved, rejected
    rabies_expiry_date = Column(Date, nullable=True)
    combo_expiry_date = Column(Date, nullable=True)
    temp_storage = Column(Boolean, default=True, nullable=False)
    approved_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)

    dog = relationship("Dog", back_populates="vaccine_certifications")


class Notification(Base):
    __tablename__ = "notifications"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    type = Column(String, nullable=False)
    title = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    meta = Column("data", JSON, default=dict)
    is_read = Column(Boolean, default=False)
    created_at = Column(DateTime, default=_utcnow)

    user = relationship("User", back_populates="notifications")


class MaintenanceSchedule(Base):
    __tablename__ = "maintenance_schedules"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    title = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    start_time = Column(DateTime, nullable=True)
    end_time = Column(DateTime, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    is_emergency = Column(Boolean, default=False, nullable=False)
    created_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)


class IPWhitelistEntry(Base):
    __tablename__ = "ip_whitelist"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    ip_address = Column(String, nullable=False)
    description = Column(String, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=_utcnow)


class AuditLog(Base):
    __tablename__ = "audit_logs"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"))
    action = Column(String, nullable=False)
    target_type = Column(String)
    target_id = Column(UUID(as_uuid=True))
    details = Column(JSON, default=dict)
    created_at = Column(DateTime, default=_utcnow)
