import os
os.environ["TESTING"] = "1"
os.environ.setdefault("SECRET_KEY", "test-secret")
os.environ["DATABASE_URL"] = "sqlite:///./test.db"
os.environ.pop("MINIO_ENDPOINT", None)
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import shutil
import uuid

from dogrun.main import app
from dogrun.database import Base, get_db
from dogrun import auth, models, pubsub

SQLALCHEMY_DATABASE_URL = os.environ["DATABASE_URL"]
engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False, "timeout": 30},
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base.metadata.drop_all(bind=engine)
Base.metadata.create_all(bind=engine)

def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()

app.dependency_overrides[get_db] = override_get_db


@pytest.fixture(autouse=True)
def upload_dir(tmp_path):
    d = tmp_path / "uploads"
    d.mkdir()
    os.environ["UPLOAD_DIR"] = str(d)
    yield d
    shutil.rmtree(d, ignore_errors=True)


@pytest.fixture(autouse=True)
def clear_maintenance():
    """Leave no maintenance window or whitelist entry behind for later tests."""
    yield
    db = TestingSessionLocal()
    db.query(models.MaintenanceSchedule).delete()
    db.query(models.IPWhitelistEntry).delete()
    db.commit()
    db.close()

@pytest.fixture
def client():
    # each TestClient runs its own event loop; drop the cached redis connection
    pubsub._redis = None
    with TestClient(app) as c:
        yield c


def create_user(email: str | None = None, *, is_admin: bool = False, full_name: str | None = None):
    """
    purpose: insert a user directly and mint a bearer token for it
    outputs: tuple(headers dict, user id)
    status: active
    """

    email = email or f"{uuid.uuid4()}@example.com"
    db = TestingSessionLocal()
    user = models.User(
        email=email,
        hashed_password=auth.get_password_hash("secret"),
        full_name=full_name,
        is_admin=is_admin,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    user_id = user.id
    db.close()
    token = auth.create_access_token({"sub": email})
    return {"Authorization": f"Bearer {token}"}, user_id


def create_park(owner_id, *, status: str = "pending", name: str = "Riverside Dog Run", **fields):
    db = TestingSessionLocal()
    park = models.DogPark(
        owner_id=owner_id,
        name=name,
        address="1-2-3 Shibuya, Tokyo",
        status=status,
        facilities=fields.pop("facilities", {}),
        **fields,
    )
    db.add(park)
    db.commit()
    db.refresh(park)
    park_id = park.id
    db.close()
    return park_id


def add_image(park_id, image_type: str, *, approval: str = "pending", image_url: str | None = None):
    db = TestingSessionLocal()
    image = models.DogParkFacilityImage(
        park_id=park_id,
        image_type=image_type,
        image_url=image_url or f"https://cdn.example.com/{park_id}/{image_type}.jpg",
        approval=approval,
    )
    db.add(image)
    db.commit()
    db.refresh(image)
    image_id = image.id
    db.close()
    return image_id
