# app/models/purchases.py
import uuid
from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.ext.mutable import MutableDict, MutableList
from sqlalchemy.orm import relationship

from shared.core.database import Base
from shared.utils.dates import utcnow


class Purchase(Base):
    __tablename__ = "purchases"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    business_id = Column(String(64), index=True)
    supplier = Column(MutableDict.as_mutable(JSON))
    # Embedded line items, stored with the same camelCase keys the API uses
    items = Column(MutableList.as_mutable(JSON), default=list, nullable=False)
    invoice_number = Column(String(64), index=True)
    purchase_date = Column(DateTime, default=utcnow, nullable=False, index=True)

    subtotal = Column(Float, default=0, nullable=False)
    discount_amount = Column(Float, default=0, nullable=False)
    tax_rate = Column(Float, default=0, nullable=False)
    tax_amount = Column(Float, default=0, nullable=False)
    shipping_cost = Column(Float, default=0, nullable=False)
    total = Column(Float, default=0, nullable=False)

    notes = Column(Text)
    payment_method = Column(String(24), default="cash", nullable=False)
    status = Column(String(24), default="pending", nullable=False, index=True)
    # Set once the purchase has entered "received" and its asset lines were projected
    assets_projected = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    item_refs = relationship("PurchaseItemRef", back_populates="purchase",
                             cascade="all, delete-orphan")


class PurchaseItemRef(Base):
    """Lookup index from item id to the purchases whose lines reference it."""
    __tablename__ = "purchase_item_refs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    purchase_id = Column(String(36), ForeignKey("purchases.id", ondelete="CASCADE"),
                         nullable=False, index=True)
    item_id = Column(String(36), nullable=False, index=True)

    purchase = relationship("Purchase", back_populates="item_refs")
