"""SQLAlchemy models for the reference payments backend."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, relationship


class Base(DeclarativeBase):
    pass


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return uuid.uuid4().hex[:12]


class MobileTransaction(Base):
    """
    A single mobile money payment attempt.

    Tracks the full lifecycle: initiation → provider confirmation (or sandbox
    simulation) → completion/failure/cancellation. ``id`` is the transaction id
    handed to clients for polling; ``provider_transaction_id`` and
    ``conversation_id`` are the provider's own identifiers.
    """

    __tablename__ = "mobile_transactions"

    id = Column(String(12), primary_key=True, default=_new_id)
    provider = Column(String(20), nullable=False, default="mpesa")
    module = Column(String(20), nullable=False, index=True)
    module_reference_id = Column(String(100), nullable=True, index=True)
    phone = Column(String(20), nullable=False)
    msisdn = Column(String(20), nullable=False)  # 258XXXXXXXXX
    amount = Column(Float, nullable=False)
    reference = Column(String(100), nullable=False)

    status = Column(String(20), nullable=False, default="pending", index=True)
    simulated = Column(Integer, default=0)
    provider_transaction_id = Column(String(100), nullable=True, index=True)
    conversation_id = Column(String(100), nullable=True, index=True)
    error_code = Column(String(50), nullable=True)
    error_message = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    audit_logs = relationship("AuditLog", back_populates="transaction", lazy="raise")


class AuditLog(Base):
    """
    Immutable audit trail entry.

    Every state change of a transaction (initiation, simulation, provider
    callback, cancellation) gets an append-only entry.
    """

    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    transaction_id = Column(String(12), ForeignKey("mobile_transactions.id"), nullable=True, index=True)
    action = Column(String(50), nullable=False)
    details = Column(Text, nullable=True)
    timestamp = Column(DateTime(timezone=True), default=_utcnow)

    transaction = relationship("MobileTransaction", back_populates="audit_logs")
