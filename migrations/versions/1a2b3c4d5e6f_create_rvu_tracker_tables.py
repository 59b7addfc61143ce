"""Create rvu_codes, visits, visit_procedures and favorites tables

Revision ID: 1a2b3c4d5e6f
Revises:
Create Date: 2025-01-20 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from decimal import Decimal # For seeding data

# revision identifiers, used by Alembic.
revision = '1a2b3c4d5e6f'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    rvu_codes = op.create_table('rvu_codes',
        sa.Column('id', sa.Integer(), nullable=False, primary_key=True, autoincrement=True),
        sa.Column('hcpcs', sa.String(length=10), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('status_code', sa.String(length=5), nullable=False),
        sa.Column('work_rvu', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index(op.f('ix_rvu_codes_id'), 'rvu_codes', ['id'], unique=False)
    op.create_index(op.f('ix_rvu_codes_hcpcs'), 'rvu_codes', ['hcpcs'], unique=True)

    op.create_table('visits',
        sa.Column('id', sa.Integer(), nullable=False, primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.String(length=255), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('time', sa.Time(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('is_no_show', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index(op.f('ix_visits_id'), 'visits', ['id'], unique=False)
    op.create_index(op.f('ix_visits_user_id'), 'visits', ['user_id'], unique=False)
    op.create_index(op.f('ix_visits_date'), 'visits', ['date'], unique=False)
    op.create_index('ix_visits_user_id_date', 'visits', ['user_id', 'date'], unique=False)

    op.create_table('visit_procedures',
        sa.Column('id', sa.Integer(), nullable=False, primary_key=True, autoincrement=True),
        sa.Column('visit_id', sa.Integer(), sa.ForeignKey('visits.id', ondelete='CASCADE'), nullable=False),
        sa.Column('hcpcs', sa.String(length=10), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('status_code', sa.String(length=5), nullable=False),
        sa.Column('work_rvu', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('quantity', sa.Integer(), server_default='1', nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint('quantity > 0', name='ck_visit_procedures_quantity_positive'),
    )
    op.create_index(op.f('ix_visit_procedures_id'), 'visit_procedures', ['id'], unique=False)
    op.create_index(op.f('ix_visit_procedures_visit_id'), 'visit_procedures', ['visit_id'], unique=False)
    op.create_index(op.f('ix_visit_procedures_hcpcs'), 'visit_procedures', ['hcpcs'], unique=False)

    op.create_table('favorites',
        sa.Column('id', sa.Integer(), nullable=False, primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.String(length=255), nullable=False),
        sa.Column('hcpcs', sa.String(length=10), nullable=False),
        sa.Column('sort_order', sa.Integer(), server_default='0', nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('user_id', 'hcpcs', name='uq_favorites_user_hcpcs'),
    )
    op.create_index(op.f('ix_favorites_id'), 'favorites', ['id'], unique=False)
    op.create_index(op.f('ix_favorites_user_id'), 'favorites', ['user_id'], unique=False)

    # Seed a few common office visit codes; the full table is loaded with scripts/data/load_rvu_codes.py
    op.bulk_insert(rvu_codes, [
        {'hcpcs': '99212', 'description': 'Office o/p est sf 10 min', 'status_code': 'A', 'work_rvu': Decimal('0.70')},
        {'hcpcs': '99213', 'description': 'Office o/p est low 20 min', 'status_code': 'A', 'work_rvu': Decimal('1.30')},
        {'hcpcs': '99214', 'description': 'Office o/p est mod 30 min', 'status_code': 'A', 'work_rvu': Decimal('1.92')},
        {'hcpcs': '99215', 'description': 'Office o/p est hi 40 min', 'status_code': 'A', 'work_rvu': Decimal('2.80')},
    ])


def downgrade():
    op.drop_index(op.f('ix_favorites_user_id'), table_name='favorites')
    op.drop_index(op.f('ix_favorites_id'), table_name='favorites')
    op.drop_table('favorites')

    op.drop_index(op.f('ix_visit_procedures_hcpcs'), table_name='visit_procedures')
    op.drop_index(op.f('ix_visit_procedures_visit_id'), table_name='visit_procedures')
    op.drop_index(op.f('ix_visit_procedures_id'), table_name='visit_procedures')
    op.drop_table('visit_procedures')

    op.drop_index('ix_visits_user_id_date', table_name='visits')
    op.drop_index(op.f('ix_visits_date'), table_name='visits')
    op.drop_index(op.f('ix_visits_user_id'), table_name='visits')
    op.drop_index(op.f('ix_visits_id'), table_name='visits')
    op.drop_table('visits')

    op.drop_index(op.f('ix_rvu_codes_hcpcs'), table_name='rvu_codes')
    op.drop_index(op.f('ix_rvu_codes_id'), table_name='rvu_codes')
    op.drop_table('rvu_codes')
