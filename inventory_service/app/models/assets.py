# app/models/assets.py
import uuid
from sqlalchemy import Column, DateTime, Float, Integer, JSON, String, Text
from sqlalchemy.ext.mutable import MutableDict, MutableList

from shared.core.database import Base
from shared.utils.dates import utcnow


class Asset(Base):
    __tablename__ = "assets"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    business_id = Column(String(64), index=True)
    name = Column(String(200), nullable=False)
    asset_tag = Column(String(64), unique=True)
    category = Column(String(128), index=True)

    # Plain ids: deleting the purchase leaves its assets and their back-reference in place
    purchase_id = Column(String(36), index=True)
    purchase_line_index = Column(Integer)
    item_id = Column(String(36))
    purchase_date = Column(DateTime)
    initial_cost = Column(Float, default=0, nullable=False)
    current_value = Column(Float, default=0, nullable=False)

    location = Column(String(200))
    assigned_to = Column(String(200))
    manufacturer = Column(String(128))
    model = Column(String(128))
    serial_number = Column(String(128))
    notes = Column(Text)
    image_url = Column(String(512))
    tags = Column(MutableList.as_mutable(JSON), default=list, nullable=False)
    status = Column(String(24), default="active", nullable=False, index=True)

    # {frequency, lastMaintenance, nextMaintenance}
    maintenance_schedule = Column(MutableDict.as_mutable(JSON))
    maintenance_history = Column(MutableList.as_mutable(JSON), default=list, nullable=False)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
