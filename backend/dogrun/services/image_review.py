"""Per-image review state for dog park facility photos."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Sequence
from uuid import UUID

from sqlalchemy.orm import Session

from .. import models, storage
from ..errors import NotFoundError, ValidationError


class ImageApproval(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


IMAGE_TYPES: dict[str, str] = {
    "overview": "Overview",
    "entrance": "Entrance",
    "gate": "Smart lock",
    "large_dog_area": "Large dog area",
    "small_dog_area": "Small dog area",
    "private_booth": "Private booth",
    "parking": "Parking",
    "shower": "Shower",
    "restroom": "Restroom",
    "agility": "Agility equipment",
    "rest_area": "Rest area",
    "water_station": "Water station",
}


ALWAYS_REQUIRED_IMAGE_TYPES = ("overview", "entrance", "gate")

# image type -> park attribute path that makes the photo mandatory
_CONDITIONAL_IMAGE_TYPES: dict[str, tuple[str, ...]] = {
    "large_dog_area": ("large_dog_area",),
    "small_dog_area": ("small_dog_area",),
    "private_booth": ("private_booths",),
    "parking": ("facilities", "parking"),
    "shower": ("facilities", "shower"),
    "restroom": ("facilities", "restroom"),
    "agility": ("facilities", "agility"),
    "rest_area": ("facilities", "rest_area"),
    "water_station": ("facilities", "water_station"),
}


@dataclass(slots=True)
class ImageReviewSummary:
    total: int = 0
    pending: int = 0
    approved: int = 0
    rejected: int = 0

    @property
    def fully_approved(self) -> bool:
        # An empty set must not count as approved.
        return self.total > 0 and self.approved == self.total


def validate_image_type(image_type: str) -> str:
    if image_type not in IMAGE_TYPES:
        raise ValidationError(f"Unknown image type '{image_type}'")
    return image_type


def required_image_types(park: models.DogPark) -> list[str]:
    """Photo types the owner must upload before the second review."""

    required = list(ALWAYS_REQUIRED_IMAGE_TYPES)
    for image_type, path in _CONDITIONAL_IMAGE_TYPES.items():
        if len(path) == 1:
            enabled = getattr(park, path[0], False)
        else:
            enabled = (getattr(park, path[0], None) or {}).get(path[1], False)
        if enabled:
            required.append(image_type)
    return required


def missing_image_types(park: models.DogPark, images: Sequence[models.DogParkFacilityImage]) -> list[str]:
    uploaded = {image.image_type for image in images if image.image_url}
    return [image_type for image_type in required_image_types(park) if image_type not in uploaded]


def list_images(db: Session, park_id: UUID) -> Sequence[models.DogParkFacilityImage]:
    return (
        db.query(models.DogParkFacilityImage)
        .filter(models.DogParkFacilityImage.park_id == park_id)
        .order_by(models.DogParkFacilityImage.created_at.asc())
        .all()
    )


def summarize_images(images: Sequence[models.DogParkFacilityImage]) -> ImageReviewSummary:
    summary = ImageReviewSummary(total=len(images))
    for image in images:
        state = ImageApproval(image.approval)
        if state is ImageApproval.APPROVED:
            summary.approved += 1
        elif state is ImageApproval.REJECTED:
            summary.rejected += 1
        else:
            summary.pending += 1
    return summary


def summarize(db: Session, park_id: UUID) -> ImageReviewSummary:
    return summarize_images(list_images(db, park_id))


def is_fully_approved(db: Session, park_id: UUID) -> bool:
    """True iff the park has at least one image and all of them are approved."""

    return summarize(db, park_id).fully_approved


def load_image(db: Session, image_id: UUID) -> models.DogParkFacilityImage:
    image = db.get(models.DogParkFacilityImage, image_id)
    if image is None:
        raise NotFoundError("Facility image not found")
    return image


def set_image_approval(
    db: Session,
    image: models.DogParkFacilityImage,
    approve: bool,
    note: str | None = None,
) -> models.DogParkFacilityImage:
    """Record an admin verdict on one image; the note survives only on rejection."""

    if approve:
        image.approval = ImageApproval.APPROVED.value
        image.admin_notes = None
    else:
        image.approval = ImageApproval.REJECTED.value
        cleaned = (note or "").strip()
        image.admin_notes = cleaned or None
    image.updated_at = datetime.now(timezone.utc)
    db.flush()
    return image


def validate_image_locator(park: models.DogPark, image_url: str) -> None:
    """Accept external URLs or objects stored under this park's own namespace."""

    if image_url.startswith(("http://", "https://")):
        return
    if not storage.is_managed_by(image_url, storage.FACILITY_BUCKET, storage.facility_namespace(park.id)):
        raise ValidationError("Image must be an external URL or a photo uploaded for this park")


def register_image(
    db: Session,
    park: models.DogPark,
    image_type: str,
    image_url: str,
) -> models.DogParkFacilityImage:
    """Attach or replace the park's image for a type; replacements need review again."""

    validate_image_locator(park, image_url)
    validate_image_type(image_type)
    image = (
        db.query(models.DogParkFacilityImage)
        .filter(
            models.DogParkFacilityImage.park_id == park.id,
            models.DogParkFacilityImage.image_type == image_type,
        )
        .one_or_none()
    )
    if image is None:
        image = models.DogParkFacilityImage(park_id=park.id, image_type=image_type)
        db.add(image)
    image.image_url = image_url
    image.approval = ImageApproval.PENDING.value
    image.admin_notes = None
    image.updated_at = datetime.now(timezone.utc)
    db.flush()
    return image
