"""initial

Revision ID: 001_initial
Revises:
Create Date: 2026-10-17 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Rooms
    op.create_table('rooms',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('room_number', sa.String(), nullable=False),
        sa.Column('capacity', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint('capacity >= 0', name='ck_rooms_capacity_non_negative'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_rooms_room_number'), 'rooms', ['room_number'], unique=True)

    # Tenants
    op.create_table('tenants',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('first_name', sa.String(), nullable=False),
        sa.Column('last_name', sa.String(), nullable=False),
        sa.Column('email', sa.String(), nullable=True),
        sa.Column('phone', sa.String(), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('emergency_contact', sa.String(), nullable=True),
        sa.Column('room_id', sa.Integer(), nullable=True),
        sa.Column('room_number', sa.String(), nullable=True),
        sa.Column('residents', sa.String(), nullable=False),
        sa.Column('version', sa.Integer(), server_default='1', nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['room_id'], ['rooms.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_tenants_email'), 'tenants', ['email'], unique=False)

    # Occupancy
    op.create_table('occupancy',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('room_id', sa.Integer(), nullable=False),
        sa.Column('check_in_date', sa.DATE(), nullable=False),
        sa.Column('check_out_date', sa.DATE(), nullable=True),
        sa.Column('is_current', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['room_id'], ['rooms.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_occupancy_tenant_id'), 'occupancy', ['tenant_id'], unique=False)
    op.create_index(op.f('ix_occupancy_room_id'), 'occupancy', ['room_id'], unique=False)
    op.create_index('ix_occupancy_room_current', 'occupancy', ['room_id', 'is_current'], unique=False)
    # At most one current occupancy per tenant
    op.create_index(
        'uq_occupancy_current_tenant', 'occupancy', ['tenant_id'], unique=True,
        postgresql_where=sa.text('is_current'),
        sqlite_where=sa.text('is_current')
    )

    # Identities
    op.create_table('identities',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('role', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_identities_email'), 'identities', ['email'], unique=True)

    # Profiles
    op.create_table('profiles',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['id'], ['identities.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_profiles_tenant_id'), 'profiles', ['tenant_id'], unique=False)

    # Provisioning runs
    op.create_table('provisioning_runs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('state', sa.String(), nullable=False),
        sa.Column('identity_id', sa.String(), nullable=True),
        sa.Column('tenant_id', sa.Integer(), nullable=True),
        sa.Column('error_kind', sa.String(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_provisioning_runs_email'), 'provisioning_runs', ['email'], unique=False)
    op.create_index(op.f('ix_provisioning_runs_state'), 'provisioning_runs', ['state'], unique=False)


def downgrade() -> None:
    op.drop_table('provisioning_runs')
    op.drop_table('profiles')
    op.drop_table('identities')
    op.drop_index('uq_occupancy_current_tenant', table_name='occupancy')
    op.drop_table('occupancy')
    op.drop_table('tenants')
    op.drop_table('rooms')
