# shipsync/domain/buyer.py
# ORM models for buyers and their sale record numbers (SRNs).

from datetime import datetime, timezone
from typing import Optional, List, Dict, Any
from sqlalchemy import BigInteger, Integer, String, Text, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship, Mapped, mapped_column

from shipsync.database.base import Base
from shipsync.utils.phone_normalizer import format_phone_for_display


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Buyer(Base):
    """
    A shipment recipient. Identified by the natural key (country, phone),
    where phone is the canonical international form.
    """
    __tablename__ = 'buyers'
    __table_args__ = (
        UniqueConstraint('country', 'phone', name='uq_buyers_country_phone'),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    full_name: Mapped[str] = mapped_column(Text, nullable=False)
    address1: Mapped[str] = mapped_column(Text, nullable=False, default='')
    address2: Mapped[str] = mapped_column(Text, nullable=False, default='')
    city: Mapped[str] = mapped_column(Text, nullable=False, default='')
    state: Mapped[str] = mapped_column(Text, nullable=False, default='')
    zip_code: Mapped[str] = mapped_column(String(32), nullable=False, default='')
    country: Mapped[str] = mapped_column(String(2), nullable=False, index=True)  # ISO-2
    phone: Mapped[str] = mapped_column(String(32), nullable=False)
    email: Mapped[str] = mapped_column(Text, nullable=False, default='')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    sale_records: Mapped[List["BuyerSaleRecord"]] = relationship(
        back_populates="buyer", order_by="BuyerSaleRecord.sale_record_number"
    )
    orders: Mapped[List["Order"]] = relationship(back_populates="buyer")

    def to_dict(self, include_srns: bool = False) -> Dict[str, Any]:
        data = {
            'id': self.id,
            'buyerFullName': self.full_name,
            'buyerAddress1': self.address1,
            'buyerAddress2': self.address2,
            'buyerCity': self.city,
            'buyerState': self.state,
            'buyerZip': self.zip_code,
            'buyerCountry': self.country,
            'buyerPhone': self.phone,
            'buyerPhoneDisplay': format_phone_for_display(self.phone),
            'buyerEmail': self.email,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
            'updatedAt': self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_srns:
            data['srns'] = [srn.to_dict() for srn in self.sale_records]
        return data

    def __repr__(self):
        return f"<Buyer(id={self.id}, country='{self.country}', phone='{self.phone}')>"


class BuyerSaleRecord(Base):
    """An externally assigned sale record number, owned by exactly one buyer."""
    __tablename__ = 'buyer_sale_records'

    sale_record_number: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    buyer_id: Mapped[int] = mapped_column(ForeignKey('buyers.id'), nullable=False, index=True)
    kurasi_shipment_id: Mapped[Optional[str]] = mapped_column(String(64), unique=True)
    tracking_number: Mapped[Optional[str]] = mapped_column(String(128))
    tracking_slug: Mapped[Optional[str]] = mapped_column(String(64))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    buyer: Mapped["Buyer"] = relationship(back_populates="sale_records")
    order: Mapped[Optional["Order"]] = relationship(back_populates="sale_record", uselist=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'saleRecordNumber': self.sale_record_number,
            'buyerId': self.buyer_id,
            'kurasiShipmentId': self.kurasi_shipment_id,
            'trackingNumber': self.tracking_number,
            'trackingSlug': self.tracking_slug,
        }

    def __repr__(self):
        return f"<BuyerSaleRecord(srn={self.sale_record_number}, buyer_id={self.buyer_id})>"
