# alembic/versions/4c1e9a7d2b10_initial_shipment_and_buyer_schema.py
"""Initial schema: buyers, sale records, shipment mirror, orders, sync checkpoints

Revision ID: 4c1e9a7d2b10
Revises:
Create Date: 2025-10-20 09:12:44.118302

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '4c1e9a7d2b10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'buyers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('full_name', sa.Text(), nullable=False),
        sa.Column('address1', sa.Text(), nullable=False),
        sa.Column('address2', sa.Text(), nullable=False),
        sa.Column('city', sa.Text(), nullable=False),
        sa.Column('state', sa.Text(), nullable=False),
        sa.Column('zip_code', sa.String(length=32), nullable=False),
        sa.Column('country', sa.String(length=2), nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=False),
        sa.Column('email', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_buyers')),
        sa.UniqueConstraint('country', 'phone', name='uq_buyers_country_phone'),
    )
    op.create_index(op.f('ix_buyers_country'), 'buyers', ['country'], unique=False)

    op.create_table(
        'customers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('email', sa.Text(), nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_customers')),
    )

    op.create_table(
        'package_details',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('weight_grams', sa.Integer(), nullable=True),
        sa.Column('length_cm', sa.Integer(), nullable=True),
        sa.Column('width_cm', sa.Integer(), nullable=True),
        sa.Column('height_cm', sa.Integer(), nullable=True),
        sa.Column('service_name', sa.String(length=128), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_package_details')),
    )

    op.create_table(
        'shipment_mirrors',
        sa.Column('kurasi_shipment_id', sa.String(length=64), nullable=False),
        sa.Column('sale_record_number', sa.String(length=64), nullable=True),
        sa.Column('flag_id', sa.Integer(), nullable=True),
        sa.Column('buyer_full_name', sa.Text(), nullable=True),
        sa.Column('buyer_country', sa.String(length=64), nullable=True),
        sa.Column('buyer_city', sa.Text(), nullable=True),
        sa.Column('buyer_state', sa.Text(), nullable=True),
        sa.Column('buyer_zip', sa.String(length=32), nullable=True),
        sa.Column('buyer_phone', sa.String(length=32), nullable=True),
        sa.Column('service_name', sa.String(length=128), nullable=True),
        sa.Column('carrier', sa.String(length=64), nullable=True),
        sa.Column('shipping_fee', sa.String(length=32), nullable=True),
        sa.Column('shipping_fee_minor', sa.BigInteger(), nullable=True),
        sa.Column('chargeable_weight', sa.Integer(), nullable=True),
        sa.Column('actual_weight', sa.Integer(), nullable=True),
        sa.Column('tracking_number', sa.String(length=128), nullable=True),
        sa.Column('awb', sa.String(length=128), nullable=True),
        sa.Column('box_id', sa.String(length=64), nullable=True),
        sa.Column('shipment_received_at', sa.DateTime(), nullable=True),
        sa.Column('label_created_at', sa.DateTime(), nullable=True),
        sa.Column('shipped_at', sa.DateTime(), nullable=True),
        sa.Column('last_synced_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('kurasi_shipment_id', name=op.f('pk_shipment_mirrors')),
    )
    op.create_index(
        op.f('ix_shipment_mirrors_sale_record_number'), 'shipment_mirrors', ['sale_record_number'], unique=False
    )

    op.create_table(
        'sync_checkpoints',
        sa.Column('name', sa.String(length=64), nullable=False),
        sa.Column('month_end', sa.Date(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('name', name=op.f('pk_sync_checkpoints')),
    )

    op.create_table(
        'buyer_sale_records',
        sa.Column('sale_record_number', sa.BigInteger(), autoincrement=False, nullable=False),
        sa.Column('buyer_id', sa.Integer(), nullable=False),
        sa.Column('kurasi_shipment_id', sa.String(length=64), nullable=True),
        sa.Column('tracking_number', sa.String(length=128), nullable=True),
        sa.Column('tracking_slug', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ['buyer_id'], ['buyers.id'], name=op.f('fk_buyer_sale_records_buyer_id_buyers')
        ),
        sa.PrimaryKeyConstraint('sale_record_number', name=op.f('pk_buyer_sale_records')),
        sa.UniqueConstraint('kurasi_shipment_id', name=op.f('uq_buyer_sale_records_kurasi_shipment_id')),
    )
    op.create_index(op.f('ix_buyer_sale_records_buyer_id'), 'buyer_sale_records', ['buyer_id'], unique=False)

    op.create_table(
        'orders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('placed_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=True),
        sa.Column('buyer_id', sa.Integer(), nullable=False),
        sa.Column('package_id', sa.Integer(), nullable=True),
        sa.Column('srn_id', sa.BigInteger(), nullable=True),
        sa.Column('krs_tracking_number', sa.String(length=64), nullable=True),
        sa.Column('tracking_link', sa.Text(), nullable=True),
        sa.Column('delivery_status', sa.String(length=32), nullable=True),
        sa.Column('local_status', sa.String(length=32), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ['buyer_id'], ['buyers.id'], name=op.f('fk_orders_buyer_id_buyers'), ondelete='RESTRICT'
        ),
        sa.ForeignKeyConstraint(
            ['customer_id'], ['customers.id'], name=op.f('fk_orders_customer_id_customers')
        ),
        sa.ForeignKeyConstraint(
            ['package_id'], ['package_details.id'], name=op.f('fk_orders_package_id_package_details'), ondelete='CASCADE'
        ),
        sa.ForeignKeyConstraint(
            ['srn_id'], ['buyer_sale_records.sale_record_number'],
            name=op.f('fk_orders_srn_id_buyer_sale_records'), ondelete='SET NULL'
        ),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_orders')),
        sa.UniqueConstraint('package_id', name=op.f('uq_orders_package_id')),
        sa.UniqueConstraint('srn_id', name=op.f('uq_orders_srn_id')),
    )
    op.create_index(op.f('ix_orders_buyer_id'), 'orders', ['buyer_id'], unique=False)
    op.create_index(op.f('ix_orders_customer_id'), 'orders', ['customer_id'], unique=False)


def downgrade() -> None:
    op.drop_index(op.f('ix_orders_customer_id'), table_name='orders')
    op.drop_index(op.f('ix_orders_buyer_id'), table_name='orders')
    op.drop_table('orders')
    op.drop_index(op.f('ix_buyer_sale_records_buyer_id'), table_name='buyer_sale_records')
    op.drop_table('buyer_sale_records')
    op.drop_table('sync_checkpoints')
    op.drop_index(op.f('ix_shipment_mirrors_sale_record_number'), table_name='shipment_mirrors')
    op.drop_table('shipment_mirrors')
    op.drop_table('package_details')
    op.drop_table('customers')
    op.drop_index(op.f('ix_buyers_country'), table_name='buyers')
    op.drop_table('buyers')
