# shipsync/domain/order.py
# Order-management entities. Only the linkage columns matter to the sync core.

from datetime import datetime, timezone
from typing import Optional, Dict, Any
from sqlalchemy import BigInteger, Integer, String, Text, DateTime, ForeignKey
from sqlalchemy.orm import relationship, Mapped, mapped_column

from shipsync.database.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Customer(Base):
    __tablename__ = 'customers'

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    email: Mapped[str] = mapped_column(Text, nullable=False, default='')
    phone: Mapped[Optional[str]] = mapped_column(String(32))


class PackageDetail(Base):
    __tablename__ = 'package_details'

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    weight_grams: Mapped[Optional[int]] = mapped_column(Integer)
    length_cm: Mapped[Optional[int]] = mapped_column(Integer)
    width_cm: Mapped[Optional[int]] = mapped_column(Integer)
    height_cm: Mapped[Optional[int]] = mapped_column(Integer)
    service_name: Mapped[Optional[str]] = mapped_column(String(128))
    description: Mapped[Optional[str]] = mapped_column(Text)


class Order(Base):
    __tablename__ = 'orders'

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    placed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    customer_id: Mapped[Optional[int]] = mapped_column(ForeignKey('customers.id'), index=True)
    # Buyers with orders cannot be dropped implicitly
    buyer_id: Mapped[int] = mapped_column(ForeignKey('buyers.id', ondelete='RESTRICT'), nullable=False, index=True)
    package_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey('package_details.id', ondelete='CASCADE'), unique=True
    )
    srn_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey('buyer_sale_records.sale_record_number', ondelete='SET NULL'), unique=True
    )
    krs_tracking_number: Mapped[Optional[str]] = mapped_column(String(64))
    tracking_link: Mapped[Optional[str]] = mapped_column(Text)
    delivery_status: Mapped[Optional[str]] = mapped_column(String(32))
    local_status: Mapped[str] = mapped_column(String(32), nullable=False, default='PENDING')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    buyer: Mapped["Buyer"] = relationship(back_populates="orders")
    customer: Mapped[Optional[Customer]] = relationship()
    package: Mapped[Optional[PackageDetail]] = relationship()
    sale_record: Mapped[Optional["BuyerSaleRecord"]] = relationship(back_populates="order")

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'placedAt': self.placed_at.isoformat() if self.placed_at else None,
            'customerId': self.customer_id,
            'buyerId': self.buyer_id,
            'packageId': self.package_id,
            'srnId': self.srn_id,
            'krsTrackingNumber': self.krs_tracking_number,
            'trackingLink': self.tracking_link,
            'deliveryStatus': self.delivery_status,
            'localStatus': self.local_status,
        }
