import os
from decimal import Decimal
from dotenv import load_dotenv

load_dotenv()

class Settings:
    PROJECT_NAME: str = "FreightBridge"
    DATABASE_URL: str = os.getenv("DATABASE_URL", "postgres://postgres:password@db:5432/freightbridge")
    AUTO_CREATE_TABLES: bool = os.getenv("AUTO_CREATE_TABLES", "true").lower() == "true"

    # Pricing
    MARKUP_RATE: Decimal = Decimal(os.getenv("MARKUP_RATE", "0.14"))
    MARKUP_MIN: Decimal = Decimal(os.getenv("MARKUP_MIN", "0.05"))
    MARKUP_MAX: Decimal = Decimal(os.getenv("MARKUP_MAX", "0.50"))

    # Bidding window
    BIDDING_WINDOW_HOURS: int = int(os.getenv("BIDDING_WINDOW_HOURS", "48"))
    MIN_BIDS_FOR_SELECTION: int = int(os.getenv("MIN_BIDS_FOR_SELECTION", "3"))

    # Booking
    CARRIER_REFERENCE_PREFIX: str = os.getenv("CARRIER_REFERENCE_PREFIX", "FB")
    BOOKING_AUTO_CONFIRM: bool = os.getenv("BOOKING_AUTO_CONFIRM", "true").lower() == "true"

    # File storage
    UPLOAD_DIR: str = os.getenv("UPLOAD_DIR", "uploads")
    MAX_UPLOAD_BYTES: int = int(os.getenv("MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))  # 10MB

    # Scheduler
    SCHEDULER_ENABLED: bool = os.getenv("SCHEDULER_ENABLED", "true").lower() == "true"
    SELECTION_SWEEP_MINUTES: int = int(os.getenv("SELECTION_SWEEP_MINUTES", "5"))
    BOOKING_CONFIRM_MINUTES: int = int(os.getenv("BOOKING_CONFIRM_MINUTES", "2"))
    TRACKING_SWEEP_MINUTES: int = int(os.getenv("TRACKING_SWEEP_MINUTES", "30"))

    # Notification delivery queue
    NOTIFICATION_QUEUE_ENABLED: bool = os.getenv("NOTIFICATION_QUEUE_ENABLED", "false").lower() == "true"
    REDIS_URL: str = os.getenv("REDIS_URL", "redis://redis:6379/0")

    def get_database_url(self):
        url = self.DATABASE_URL
        # Fix for SQLAlchemy compatibility (if using 'postgres://' instead of 'postgresql+psycopg2://')
        if url.startswith("postgres://"):
            url = url.replace("postgres://", "postgresql+psycopg2://", 1)
        return url

settings = Settings()
