"""Product and patch models"""

from sqlalchemy import Column, String, Integer, Numeric, Boolean, CheckConstraint, Index

from .base import BaseModel


class Product(BaseModel):
    """Jersey or accessory in the catalog"""

    __tablename__ = "products"

    name = Column(String(255), nullable=False)
    category = Column(String(100), nullable=False, index=True)
    price = Column(Numeric(10, 2), nullable=False)
    shipping_price = Column(Numeric(10, 2), nullable=True)
    stock_quantity = Column(Integer, default=0, nullable=False)
    image_url = Column(String(500), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    __table_args__ = (
        CheckConstraint("stock_quantity >= 0", name="check_stock_non_negative"),
        CheckConstraint("price >= 0", name="check_price_non_negative"),
        Index("idx_products_category_active", "category", "is_active"),
    )


class Patch(BaseModel):
    """Competition/sleeve patch selectable as a jersey customization"""

    __tablename__ = "patches"

    code = Column(String(100), unique=True, nullable=False, index=True)
    title = Column(String(255), nullable=False)
    image_url = Column(String(500), nullable=True)
    price = Column(Numeric(10, 2), default=0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
