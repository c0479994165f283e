"""
Address model for shipping
"""

from sqlalchemy import Column, String, Boolean, ForeignKey, Uuid
from typing import Dict

from .base import BaseModel


class Address(BaseModel):
    """User shipping addresses"""

    __tablename__ = "addresses"

    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)

    full_name = Column(String(255), nullable=False)
    phone = Column(String(30), nullable=True)
    address_line1 = Column(String(500), nullable=False)
    address_line2 = Column(String(500), nullable=True)
    city = Column(String(100), nullable=False)
    state = Column(String(100), nullable=False)
    postal_code = Column(String(20), nullable=False)
    country = Column(String(100), default="Italy", nullable=False)

    is_default = Column(Boolean, default=False)

    def as_shipping_address(self) -> Dict[str, str]:
        """Snapshot stored on the order"""
        street = self.address_line1
        if self.address_line2:
            street = f"{street}, {self.address_line2}"
        return {
            "street": street,
            "city": self.city,
            "state": self.state,
            "postalCode": self.postal_code,
            "country": self.country,
        }
