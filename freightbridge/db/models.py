from sqlalchemy import Column, String, DateTime, Date, ForeignKey, Integer, Text, Numeric, Boolean, Uuid, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime
import uuid
from freightbridge.db.session import Base


class ShipmentRequest(Base):
    """A client's request for carriage; the quote and, once booked, the shipment"""
    __tablename__ = "shipment_requests"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    client_id = Column(Uuid, nullable=False, index=True)
    mode = Column(String, nullable=False)  # Ex-Works, FOB
    container_type = Column(String, nullable=False)  # 20ft, 40ft, 40HC
    commodity = Column(String, nullable=False)
    num_containers = Column(Integer, nullable=False, default=1)
    weight_per_container = Column(Numeric(10, 2), nullable=True)
    shipment_date = Column(Date, nullable=False)
    collection_address = Column(Text, nullable=True)  # Ex-Works only

    # Status: see utils.shipment_state.ShipmentStatus
    status = Column(String, nullable=False, default="quote_requested", index=True)
    status_updated_at = Column(DateTime, default=datetime.utcnow)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Winner selection
    selected_vendor_id = Column(Uuid, nullable=True, index=True)
    winning_quote_id = Column(Uuid, nullable=True)
    markup_rate = Column(Numeric(5, 4), nullable=True)
    final_price = Column(Numeric(12, 2), nullable=True)
    selected_at = Column(DateTime, nullable=True)

    # Booking
    carrier_reference = Column(String, nullable=True)
    sailing_date = Column(Date, nullable=True)
    booked_at = Column(DateTime, nullable=True)
    eta = Column(Date, nullable=True)

    bids = relationship("Bid", back_populates="quote_request", cascade="all, delete")
    bills_of_lading = relationship("BillOfLading", back_populates="shipment")
    logs = relationship("ShipmentLog", back_populates="shipment", order_by="ShipmentLog.timestamp")


class Bid(Base):
    __tablename__ = "bids"
    __table_args__ = (
        UniqueConstraint("quote_request_id", "vendor_id", name="uq_bid_quote_vendor"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    quote_request_id = Column(Uuid, ForeignKey("shipment_requests.id"), nullable=False, index=True)
    vendor_id = Column(Uuid, nullable=False)
    cost_usd = Column(Numeric(12, 2), nullable=False)
    carrier_name = Column(String, nullable=False)
    sailing_date = Column(Date, nullable=False)

    # Status: submitted, selected, rejected
    status = Column(String, default="submitted")
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Revision tracking (a vendor re-bidding updates its own row)
    revision_number = Column(Integer, default=1)

    quote_request = relationship("ShipmentRequest", back_populates="bids")


class BillOfLading(Base):
    __tablename__ = "bills_of_lading"
    __table_args__ = (
        UniqueConstraint("shipment_id", "version", name="uq_bl_shipment_version"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    shipment_id = Column(Uuid, ForeignKey("shipment_requests.id"), nullable=False, index=True)
    version = Column(String, nullable=False)  # draft, final
    file_url = Column(String, nullable=False)
    uploaded_by = Column(Uuid, nullable=False)
    approved = Column(Boolean, default=False)
    approved_by = Column(Uuid, nullable=True)
    approved_at = Column(DateTime, nullable=True)
    remarks = Column(Text, nullable=True)
    uploaded_at = Column(DateTime, default=datetime.utcnow)

    shipment = relationship("ShipmentRequest", back_populates="bills_of_lading")
    amendments = relationship("Amendment", back_populates="bill_of_lading")


class Amendment(Base):
    """A proposed post-booking change to cost or schedule"""
    __tablename__ = "amendments"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    bl_id = Column(Uuid, ForeignKey("bills_of_lading.id"), nullable=False)
    shipment_id = Column(Uuid, ForeignKey("shipment_requests.id"), nullable=False, index=True)
    initiated_by = Column(String, nullable=False)  # vendor, admin, client
    initiated_by_id = Column(Uuid, nullable=False)
    reason = Column(Text, nullable=False)
    file_upload = Column(String, nullable=True)
    extra_cost = Column(Numeric(12, 2), nullable=True)
    markup_rate = Column(Numeric(5, 4), nullable=True)
    markup_amount = Column(Numeric(12, 2), nullable=True)
    delay_days = Column(Integer, nullable=True)

    # Status: requested, vendor_replied, admin_review, client_review, accepted, rejected
    status = Column(String, nullable=False, default="requested", index=True)
    approved_by = Column(Uuid, nullable=True)

    # Holds the shipment id while non-terminal; unique so a shipment has one open amendment
    open_slot = Column(Uuid, unique=True, nullable=True)

    vendor_reply_at = Column(DateTime, nullable=True)
    admin_review_at = Column(DateTime, nullable=True)
    client_response_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    bill_of_lading = relationship("BillOfLading", back_populates="amendments")


class Invoice(Base):
    __tablename__ = "invoices"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    shipment_id = Column(Uuid, ForeignKey("shipment_requests.id"), nullable=False, index=True)
    user_id = Column(Uuid, nullable=False)  # billed client or paid vendor
    amount = Column(Numeric(12, 2), nullable=False)
    type = Column(String, nullable=False, default="client")  # client, vendor
    status = Column(String, nullable=False, default="unpaid")  # unpaid, awaiting_verification, paid
    proof_url = Column(String, nullable=True)
    due_date = Column(Date, nullable=True)
    paid_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class ShipmentLog(Base):
    """Audit trail of every change applied to a shipment"""
    __tablename__ = "shipment_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    shipment_id = Column(Uuid, ForeignKey("shipment_requests.id"), nullable=False, index=True)
    actor = Column(String, nullable=False)
    action = Column(String, nullable=False)
    details = Column(Text, nullable=True)  # JSON
    timestamp = Column(DateTime, default=datetime.utcnow)

    shipment = relationship("ShipmentRequest", back_populates="logs")


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, nullable=False, index=True)
    type = Column(String, nullable=False)  # winner_selected, booking_confirmed, amendment_pushed, etc.
    title = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    related_shipment_id = Column(Uuid, ForeignKey("shipment_requests.id"), nullable=True)
    related_amendment_id = Column(Uuid, ForeignKey("amendments.id"), nullable=True)
    is_read = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    read_at = Column(DateTime, nullable=True)
    delivered_at = Column(DateTime, nullable=True)
