# app/models/items.py
import uuid
from sqlalchemy import CheckConstraint, Column, DateTime, Float, JSON, String, Text
from sqlalchemy.ext.mutable import MutableDict, MutableList

from shared.core.database import Base
from shared.utils.dates import utcnow

STOCK_FIELDS = ("quantity", "weight", "length", "area", "volume")


class Item(Base):
    __tablename__ = "items"
    __table_args__ = tuple(
        CheckConstraint(f"{field} >= 0", name=f"ck_items_{field}_non_negative")
        for field in STOCK_FIELDS
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    business_id = Column(String(64), index=True)
    sku = Column(String(64), nullable=False, unique=True)
    name = Column(String(200), nullable=False)
    category = Column(String(128), index=True)
    description = Column(Text)
    image_url = Column(String(512))
    tags = Column(MutableList.as_mutable(JSON), default=list, nullable=False)

    item_type = Column(String(16), default="product", nullable=False)
    tracking_type = Column(String(16), default="quantity", nullable=False)

    # Only the column named by tracking_type is authoritative
    quantity = Column(Float, default=0, nullable=False)
    weight = Column(Float, default=0, nullable=False)
    length = Column(Float, default=0, nullable=False)
    area = Column(Float, default=0, nullable=False)
    volume = Column(Float, default=0, nullable=False)

    weight_unit = Column(String(8), default="lb", nullable=False)
    length_unit = Column(String(8), default="in", nullable=False)
    area_unit = Column(String(8), default="sqft", nullable=False)
    volume_unit = Column(String(8), default="l", nullable=False)

    price = Column(Float, nullable=False)
    price_type = Column(String(24), default="each", nullable=False)
    cost = Column(Float, default=0, nullable=False)
    pack_info = Column(MutableDict.as_mutable(JSON))

    # Embedded relationship arrays: {item, <measurement>} dicts and item ids
    components = Column(MutableList.as_mutable(JSON), default=list, nullable=False)
    used_in_products = Column(MutableList.as_mutable(JSON), default=list, nullable=False)
    derived_from = Column(MutableDict.as_mutable(JSON))
    derived_items = Column(MutableList.as_mutable(JSON), default=list, nullable=False)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    last_updated = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def tracked_stock(self) -> float:
        return getattr(self, self.tracking_type) or 0

    def set_tracked_stock(self, value: float):
        setattr(self, self.tracking_type, value)

    def unit_for(self, kind: str):
        return getattr(self, f"{kind}_unit", None)

    def is_material(self) -> bool:
        return self.item_type in ("material", "both")

    def is_product(self) -> bool:
        return self.item_type in ("product", "both")
