from datetime import date, datetime
from typing import Optional, Any, Dict, List
from pydantic import BaseModel, EmailStr, ConfigDict, Field
from uuid import UUID


class UserCreate(BaseModel):
    email: EmailStr
    password: str
    full_name: Optional[str] = None


class UserOut(BaseModel):
    id: UUID
    email: EmailStr
    full_name: Optional[str] = None
    is_admin: bool = False
    model_config = ConfigDict(from_attributes=True)


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class ParkFacilities(BaseModel):
    parking: bool = False
    shower: bool = False
    restroom: bool = False
    agility: bool = False
    rest_area: bool = False
    water_station: bool = False


class DogParkCreate(BaseModel):
    name: str = Field(min_length=1)
    address: str = Field(min_length=1)
    description: Optional[str] = None
    price: int = Field(default=0, ge=0)
    max_capacity: int = Field(default=0, ge=0)
    large_dog_area: bool = False
    small_dog_area: bool = False
    private_booths: bool = False
    private_booth_count: int = Field(default=0, ge=0)
    facilities: ParkFacilities = Field(default_factory=ParkFacilities)


class DogParkOut(BaseModel):
    id: UUID
    owner_id: UUID
    name: str
    address: str
    status: str
    description: Optional[str] = None
    price: Optional[int] = None
    max_capacity: Optional[int] = None
    large_dog_area: bool = False
    small_dog_area: bool = False
    private_booths: bool = False
    private_booth_count: Optional[int] = None
    facilities: Optional[Dict[str, Any]] = None
    approved_at: Optional[datetime] = None
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class FacilityImageCreate(BaseModel):
    image_type: str
    image_url: str = Field(min_length=1)


class FacilityImageOut(BaseModel):
    id: UUID
    park_id: UUID
    image_type: str
    image_url: str
    approval: str
    admin_notes: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class ImageReviewSummaryOut(BaseModel):
    total: int
    pending: int
    approved: int
    rejected: int
    fully_approved: bool


class ReviewStageOut(BaseModel):
    first_stage_passed_at: Optional[datetime] = None
    second_stage_submitted_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)


class ReviewEventOut(BaseModel):
    id: UUID
    decision: str
    from_status: str
    to_status: str
    note: Optional[str] = None
    actor_id: Optional[UUID] = None
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class PendingParkOut(DogParkOut):
    owner_name: Optional[str] = None
    owner_email: Optional[str] = None
    images: ImageReviewSummaryOut
    review_stage: Optional[ReviewStageOut] = None


class DecisionRequest(BaseModel):
    approve: bool
    note: Optional[str] = None


class DecisionOut(BaseModel):
    success: bool
    message: str
    error: Optional[str] = None
    status: Optional[str] = None


class DogCreate(BaseModel):
    name: str = Field(min_length=1)
    breed: Optional[str] = None


class DogOut(BaseModel):
    id: UUID
    owner_id: UUID
    name: str
    breed: Optional[str] = None
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class VaccineCertificationOut(BaseModel):
    id: UUID
    dog_id: UUID
    status: str
    rabies_vaccine_image: Optional[str] = None
    combo_vaccine_image: Optional[str] = None
    rabies_expiry_date: Optional[date] = None
    combo_expiry_date: Optional[date] = None
    temp_storage: bool
    approved_at: Optional[datetime] = None
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class PendingVaccineOut(VaccineCertificationOut):
    dog: DogOut


class VaccineExpiryUpdate(BaseModel):
    rabies_expiry_date: Optional[date] = None
    combo_expiry_date: Optional[date] = None


class NotificationOut(BaseModel):
    id: UUID
    user_id: UUID
    type: str
    title: str
    message: str
    is_read: bool
    data: Optional[Dict[str, Any]] = Field(default=None, validation_alias="meta")
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class MaintenanceScheduleCreate(BaseModel):
    title: str
    message: str
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    is_emergency: bool = False
    timezone: Optional[str] = None


class MaintenanceScheduleOut(BaseModel):
    id: UUID
    title: str
    message: str
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    is_active: bool
    is_emergency: bool
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class MaintenanceStatusOut(BaseModel):
    blocked: bool
    active: bool
    whitelisted: bool
    client_ip: Optional[str] = None
    schedule: Optional[MaintenanceScheduleOut] = None


class IPWhitelistCreate(BaseModel):
    ip_address: str
    description: str
    is_active: bool = True


class CurrentIPWhitelistCreate(BaseModel):
    description: Optional[str] = None


class IPWhitelistOut(BaseModel):
    id: UUID
    ip_address: str
    description: str
    is_active: bool
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class NotificationStatsOut(BaseModel):
    total: int
    unread: int
    by_type: Dict[str, int] = Field(default_factory=dict)


class ParkDetailOut(DogParkOut):
    images: List[FacilityImageOut] = Field(default_factory=list)
    review_stage: Optional[ReviewStageOut] = None
    review_events: List[ReviewEventOut] = Field(default_factory=list)
