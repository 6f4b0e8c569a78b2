import shutil
import tempfile
import uuid
from datetime import datetime, timedelta
from decimal import Decimal

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from freightbridge.core.config import settings
from freightbridge.db import models  # noqa: F401  registers the tables
from freightbridge.db.session import Base, get_db
from freightbridge.main import app
from freightbridge.services import bl_service, booking_service, quote_service, winner_selection
from freightbridge.services.file_store import file_store
from freightbridge.utils.permissions import CurrentUser


class DbSandbox:
    """
    In-memory SQLite database plus a scratch upload directory.

    Service tests use ``self.db``; API tests use ``client()``, whose requests
    each get their own session on the same database. A test should stick to
    one of the two.
    """

    def __init__(self):
        self.engine = create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        Base.metadata.create_all(bind=self.engine)
        self.Session = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)
        self.db = self.Session()

        self.upload_dir = tempfile.mkdtemp(prefix="freightbridge_uploads_")
        self._upload_root = file_store.root
        file_store.root = self.upload_dir

        self._auto_confirm = settings.BOOKING_AUTO_CONFIRM
        settings.BOOKING_AUTO_CONFIRM = True

    def _override_get_db(self):
        db = self.Session()
        try:
            yield db
        finally:
            db.close()

    def client(self) -> TestClient:
        app.dependency_overrides[get_db] = self._override_get_db
        return TestClient(app)

    def cleanup(self) -> None:
        app.dependency_overrides.pop(get_db, None)
        self.db.close()
        Base.metadata.drop_all(bind=self.engine)
        self.engine.dispose()
        file_store.root = self._upload_root
        settings.BOOKING_AUTO_CONFIRM = self._auto_confirm
        shutil.rmtree(self.upload_dir, ignore_errors=True)


def new_user(role: str) -> CurrentUser:
    return CurrentUser(id=uuid.uuid4(), role=role)


def headers_for(user: CurrentUser) -> dict:
    return {"X-User-Id": str(user.id), "X-User-Role": user.role}


def days_ahead(days: int):
    return datetime.utcnow().date() + timedelta(days=days)


def seed_quote(db, client: CurrentUser, **overrides):
    fields = {
        "mode": "FOB",
        "container_type": "40ft",
        "commodity": "Machinery parts",
        "num_containers": 2,
        "shipment_date": days_ahead(30),
    }
    fields.update(overrides)
    return quote_service.create_quote(db, client_id=client.id, **fields)


def seed_bid(db, quote, vendor: CurrentUser, cost, carrier_name: str = "Maersk Line", sailing_in_days: int = 20):
    return quote_service.submit_bid(
        db, quote.id, vendor.id, Decimal(str(cost)), carrier_name, days_ahead(sailing_in_days)
    )


def seed_selected_quote(db, costs=(1000, 1200, 1500)):
    """Quote with one bid per cost, selected by bid count. Returns (quote, client, vendors)."""
    client = new_user("client")
    vendors = [new_user("vendor") for _ in costs]
    quote = seed_quote(db, client)
    for vendor, cost in zip(vendors, costs):
        seed_bid(db, quote, vendor, cost)
    winner_selection.evaluate(db, quote.id)
    db.refresh(quote)
    return quote, client, vendors


def seed_booked_shipment(db):
    """Selected and booked. Returns (shipment, client, winning vendor)."""
    quote, client, vendors = seed_selected_quote(db)
    booking_service.book(db, quote.id, client.id)
    db.refresh(quote)
    winner = next(v for v in vendors if v.id == quote.selected_vendor_id)
    return quote, client, winner


def seed_draft_bl(db):
    """Booked shipment with a draft BL uploaded. Returns (shipment, client, vendor)."""
    shipment, client, vendor = seed_booked_shipment(db)
    bl_service.upload_bl(db, shipment.id, vendor.id, "draft", "/uploads/bl/draft.pdf")
    db.refresh(shipment)
    return shipment, client, vendor
