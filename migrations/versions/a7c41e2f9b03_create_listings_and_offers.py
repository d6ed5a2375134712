"""create listings, offers and offer_history tables

Revision ID: a7c41e2f9b03
Revises:
Create Date: 2026-10-12 09:30:00.000000
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'a7c41e2f9b03'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'listings',
        sa.Column('id', sa.Uuid, primary_key=True),
        sa.Column('owner_id', sa.Uuid, nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('price', sa.Numeric(12, 2), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='active'),
        sa.Column('sold_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('sold_price', sa.Numeric(12, 2), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    )
    op.create_index('ix_listings_owner_id', 'listings', ['owner_id'])
    op.create_index('ix_listings_status', 'listings', ['status'])

    op.create_table(
        'offers',
        sa.Column('id', sa.Uuid, primary_key=True),
        sa.Column('listing_id', sa.Uuid, sa.ForeignKey('listings.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('buyer_id', sa.Uuid, nullable=False),
        sa.Column('seller_id', sa.Uuid, nullable=False),
        sa.Column('proposed_by', sa.Uuid, nullable=False),
        sa.Column('offer_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('message', sa.Text, nullable=True),
        sa.Column('cash_offer', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('financing_needed', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('inspection_contingency', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('original_offer_id', sa.Uuid, sa.ForeignKey('offers.id', ondelete='RESTRICT'), nullable=True),
        sa.Column('counter_offer_count', sa.Integer, nullable=False, server_default='0'),
        sa.Column('is_counter_offer', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('accepted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rejected_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('expired_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint(
            "status IN ('pending', 'accepted', 'rejected', 'withdrawn', 'countered', 'expired')",
            name='ck_offers_status',
        ),
        sa.CheckConstraint('offer_amount > 0', name='ck_offers_amount_positive'),
        sa.CheckConstraint('counter_offer_count >= 0', name='ck_offers_counter_count'),
    )
    op.create_index('ix_offers_listing_id', 'offers', ['listing_id'])
    op.create_index('ix_offers_buyer_id', 'offers', ['buyer_id'])
    op.create_index('ix_offers_seller_id', 'offers', ['seller_id'])
    op.create_index('ix_offers_proposed_by', 'offers', ['proposed_by'])
    op.create_index('ix_offers_original_offer_id', 'offers', ['original_offer_id'])
    op.create_index('ix_offers_listing_buyer_status', 'offers', ['listing_id', 'buyer_id', 'status'])
    op.create_index('ix_offers_status_expires_at', 'offers', ['status', 'expires_at'])
    op.create_index(
        'uq_offers_pending_listing_parties',
        'offers',
        ['listing_id', 'buyer_id', 'seller_id'],
        unique=True,
        postgresql_where=sa.text("status = 'pending'"),
    )

    op.create_table(
        'offer_history',
        sa.Column('id', sa.Uuid, primary_key=True),
        sa.Column('offer_id', sa.Uuid, sa.ForeignKey('offers.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('action_type', sa.String(20), nullable=False),
        sa.Column('action_by', sa.Uuid, nullable=True),
        sa.Column('action_details', sa.JSON, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint(
            "action_type IN ('created', 'countered', 'accepted', 'rejected', 'withdrawn', 'expired')",
            name='ck_offer_history_action',
        ),
    )
    op.create_index('ix_offer_history_action_by', 'offer_history', ['action_by'])
    op.create_index('ix_offer_history_offer_created', 'offer_history', ['offer_id', 'created_at'])


def downgrade() -> None:
    op.drop_index('ix_offer_history_offer_created', table_name='offer_history')
    op.drop_index('ix_offer_history_action_by', table_name='offer_history')
    op.drop_table('offer_history')

    op.drop_index('uq_offers_pending_listing_parties', table_name='offers')
    op.drop_index('ix_offers_status_expires_at', table_name='offers')
    op.drop_index('ix_offers_listing_buyer_status', table_name='offers')
    op.drop_index('ix_offers_original_offer_id', table_name='offers')
    op.drop_index('ix_offers_proposed_by', table_name='offers')
    op.drop_index('ix_offers_seller_id', table_name='offers')
    op.drop_index('ix_offers_buyer_id', table_name='offers')
    op.drop_index('ix_offers_listing_id', table_name='offers')
    op.drop_table('offers')

    op.drop_index('ix_listings_status', table_name='listings')
    op.drop_index('ix_listings_owner_id', table_name='listings')
    op.drop_table('listings')
