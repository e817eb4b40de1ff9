"""initial dog park review schema"""

from alembic import op
import sqlalchemy as sa
from typing import Sequence, Union

revision: str = '20250101_01'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id():
    return sa.Column('id', sa.UUID(as_uuid=True), primary_key=True)


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
    ]


def upgrade() -> None:
    op.create_table(
        'users',
        _id(),
        sa.Column('email', sa.String(), nullable=False, unique=True),
        sa.Column('hashed_password', sa.String(), nullable=False),
        sa.Column('full_name', sa.String()),
        sa.Column('is_admin', sa.Boolean(), server_default=sa.false()),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
    )
    op.create_table(
        'dogs',
        _id(),
        sa.Column('owner_id', sa.UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('breed', sa.String()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
    )
    op.create_table(
        'dog_parks',
        _id(),
        sa.Column('owner_id', sa.UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('address', sa.String(), nullable=False),
        sa.Column('status', sa.String(), nullable=False, server_default='pending'),
        sa.Column('description', sa.Text()),
        sa.Column('price', sa.Integer(), server_default='0'),
        sa.Column('max_capacity', sa.Integer(), server_default='0'),
        sa.Column('large_dog_area', sa.Boolean(), server_default=sa.false()),
        sa.Column('small_dog_area', sa.Boolean(), server_default=sa.false()),
        sa.Column('private_booths', sa.Boolean(), server_default=sa.false()),
        sa.Column('private_booth_count', sa.Integer(), server_default='0'),
        sa.Column('facilities', sa.JSON()),
        sa.Column('approved_at', sa.DateTime(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_dog_parks_status', 'dog_parks', ['status'])
    op.create_table(
        'dog_park_review_stages',
        _id(),
        sa.Column(
            'park_id',
            sa.UUID(as_uuid=True),
            sa.ForeignKey('dog_parks.id', ondelete='CASCADE'),
            nullable=False,
            unique=True,
        ),
        sa.Column('first_stage_passed_at', sa.DateTime(), nullable=True),
        sa.Column('second_stage_submitted_at', sa.DateTime(), nullable=True),
        sa.Column('rejected_at', sa.DateTime(), nullable=True),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_table(
        'dog_park_review_events',
        _id(),
        sa.Column(
            'park_id',
            sa.UUID(as_uuid=True),
            sa.ForeignKey('dog_parks.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('actor_id', sa.UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('decision', sa.String(), nullable=False),
        sa.Column('from_status', sa.String(), nullable=False),
        sa.Column('to_status', sa.String(), nullable=False),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
    )
    op.create_index('ix_dog_park_review_events_park_id', 'dog_park_review_events', ['park_id'])
    op.create_table(
        'dog_park_facility_images',
        _id(),
        sa.Column(
            'park_id',
            sa.UUID(as_uuid=True),
            sa.ForeignKey('dog_parks.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('image_type', sa.String(), nullable=False),
        sa.Column('image_url', sa.String(), nullable=False),
        sa.Column('approval', sa.String(), nullable=False, server_default='pending'),
        sa.Column('admin_notes', sa.Text(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('park_id', 'image_type'),
    )
    op.create_table(
        'vaccine_certifications',
        _id(),
        sa.Column(
            'dog_id',
            sa.UUID(as_uuid=True),
            sa.ForeignKey('dogs.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('rabies_vaccine_image', sa.String(), nullable=True),
        sa.Column('combo_vaccine_image', sa.String(), nullable=True),
        sa.Column('status', sa.String(), nullable=False, server_default='pending'),
        sa.Column('rabies_expiry_date', sa.Date(), nullable=True),
        sa.Column('combo_expiry_date', sa.Date(), nullable=True),
        sa.Column('temp_storage', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('approved_at', sa.DateTime(), nullable=True),
        *_timestamps(),
    )
    op.create_table(
        'notifications',
        _id(),
        sa.Column('user_id', sa.UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('type', sa.String(), nullable=False),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('data', sa.JSON()),
        sa.Column('is_read', sa.Boolean(), server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
    )
    op.create_table(
        'maintenance_schedules',
        _id(),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('start_time', sa.DateTime(), nullable=True),
        sa.Column('end_time', sa.DateTime(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_emergency', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_by', sa.UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=True),
        *_timestamps(),
    )
    op.create_table(
        'ip_whitelist',
        _id(),
        sa.Column('ip_address', sa.String(), nullable=False),
        sa.Column('description', sa.String(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
    )
    op.create_table(
        'audit_logs',
        _id(),
        sa.Column('user_id', sa.UUID(as_uuid=True), sa.ForeignKey('users.id')),
        sa.Column('action', sa.String(), nullable=False),
        sa.Column('target_type', sa.String()),
        sa.Column('target_id', sa.UUID(as_uuid=True)),
        sa.Column('details', sa.JSON()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
    )


def downgrade() -> None:
    op.drop_table('audit_logs')
    op.drop_table('ip_whitelist')
    op.drop_table('maintenance_schedules')
    op.drop_table('notifications')
    op.drop_table('vaccine_certifications')
    op.drop_table('dog_park_facility_images')
    op.drop_index('ix_dog_park_review_events_park_id', table_name='dog_park_review_events')
    op.drop_table('dog_park_review_events')
    op.drop_table('dog_park_review_stages')
    op.drop_index('ix_dog_parks_status', table_name='dog_parks')
    op.drop_table('dog_parks')
    op.drop_table('dogs')
    op.drop_table('users')
