# shipsync/domain/shipment_mirror.py
# Read model of a Kurasi shipment, refreshed wholesale on every sync.

from datetime import datetime, timezone
from typing import Optional, Dict, Any
from sqlalchemy import BigInteger, Integer, String, Text, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from shipsync.database.base import Base


class ShipmentMirror(Base):
    __tablename__ = 'shipment_mirrors'

    kurasi_shipment_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    sale_record_number: Mapped[Optional[str]] = mapped_column(String(64), index=True)  # raw snapshot, may be non-numeric
    flag_id: Mapped[Optional[int]] = mapped_column(Integer)

    buyer_full_name: Mapped[Optional[str]] = mapped_column(Text)
    buyer_country: Mapped[Optional[str]] = mapped_column(String(64))
    buyer_city: Mapped[Optional[str]] = mapped_column(Text)
    buyer_state: Mapped[Optional[str]] = mapped_column(Text)
    buyer_zip: Mapped[Optional[str]] = mapped_column(String(32))
    buyer_phone: Mapped[Optional[str]] = mapped_column(String(32))

    service_name: Mapped[Optional[str]] = mapped_column(String(128))
    carrier: Mapped[Optional[str]] = mapped_column(String(64))
    shipping_fee: Mapped[Optional[str]] = mapped_column(String(32))  # as sent, e.g. "104,000"
    shipping_fee_minor: Mapped[Optional[int]] = mapped_column(BigInteger)
    chargeable_weight: Mapped[Optional[int]] = mapped_column(Integer)  # grams
    actual_weight: Mapped[Optional[int]] = mapped_column(Integer)  # grams

    tracking_number: Mapped[Optional[str]] = mapped_column(String(128))
    awb: Mapped[Optional[str]] = mapped_column(String(128))
    box_id: Mapped[Optional[str]] = mapped_column(String(64))

    shipment_received_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    label_created_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    shipped_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    last_synced_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False
    )

    def to_dict(self) -> Dict[str, Any]:
        def iso(value: Optional[datetime]) -> Optional[str]:
            return value.isoformat() if value else None

        return {
            'kurasiShipmentId': self.kurasi_shipment_id,
            'saleRecordNumber': self.sale_record_number,
            'flagId': self.flag_id,
            'buyerFullName': self.buyer_full_name,
            'buyerCountry': self.buyer_country,
            'buyerCity': self.buyer_city,
            'buyerState': self.buyer_state,
            'buyerZip': self.buyer_zip,
            'buyerPhone': self.buyer_phone,
            'serviceName': self.service_name,
            'carrier': self.carrier,
            'shippingFee': self.shipping_fee,
            'shippingFeeMinor': self.shipping_fee_minor,
            'chargeableWeight': self.chargeable_weight,
            'actualWeight': self.actual_weight,
            'trackingNumber': self.tracking_number,
            'awb': self.awb,
            'boxId': self.box_id,
            'shipmentReceivedAt': iso(self.shipment_received_at),
            'labelCreatedAt': iso(self.label_created_at),
            'shippedAt': iso(self.shipped_at),
            'lastSyncedAt': iso(self.last_synced_at),
        }
