# app/models/sales.py
import uuid
from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.ext.mutable import MutableDict, MutableList
from sqlalchemy.orm import relationship

from shared.core.database import Base
from shared.utils.dates import utcnow


class Sale(Base):
    __tablename__ = "sales"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    business_id = Column(String(64), index=True)
    invoice_number = Column(String(64), unique=True)
    customer = Column(MutableDict.as_mutable(JSON))
    items = Column(MutableList.as_mutable(JSON), default=list, nullable=False)
    sale_date = Column(DateTime, default=utcnow, nullable=False, index=True)

    subtotal = Column(Float, default=0, nullable=False)
    discount_amount = Column(Float, default=0, nullable=False)
    tax_rate = Column(Float, default=0, nullable=False)
    tax_amount = Column(Float, default=0, nullable=False)
    shipping_cost = Column(Float, default=0, nullable=False)
    total = Column(Float, default=0, nullable=False)

    payment_method = Column(String(24), default="cash", nullable=False)
    payment_status = Column(MutableDict.as_mutable(JSON))
    payments = Column(MutableList.as_mutable(JSON), default=list, nullable=False)
    notes = Column(Text)
    status = Column(String(24), default="completed", nullable=False, index=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    item_refs = relationship("SaleItemRef", back_populates="sale",
                             cascade="all, delete-orphan")


class SaleItemRef(Base):
    """Lookup index from item id to the sales whose lines reference it."""
    __tablename__ = "sale_item_refs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    sale_id = Column(String(36), ForeignKey("sales.id", ondelete="CASCADE"),
                     nullable=False, index=True)
    item_id = Column(String(36), nullable=False, index=True)

    sale = relationship("Sale", back_populates="item_refs")
