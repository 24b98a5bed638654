"""
Create students, availability, tourist request, selection and review tables.

Revision ID: 20261019_create_booking_assignment_tables
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from typing import Union

# revision identifiers, used by Alembic.
revision: str = '20261019_create_booking_assignment_tables'
down_revision: Union[str, None] = None
branch_labels = None
depends_on = None

student_status = sa.Enum('PENDING_APPROVAL', 'APPROVED', 'SUSPENDED', name='studentstatus')
reliability_badge = sa.Enum('bronze', 'silver', 'gold', name='reliabilitybadge')
request_status = sa.Enum('PENDING', 'MATCHED', 'ACCEPTED', 'EXPIRED', 'CANCELLED', name='requeststatus')
selection_status = sa.Enum('pending', 'accepted', 'rejected', name='selectionstatus')


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        'students',
        sa.Column('id', sa.String(length=32), primary_key=True),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=True),
        sa.Column('city', sa.String(), nullable=True),
        sa.Column('status', student_status, nullable=False),
        sa.Column('gender', sa.String(), nullable=True),
        sa.Column('nationality', sa.String(), nullable=True),
        sa.Column('institute', sa.String(), nullable=True),
        sa.Column('languages', sa.JSON(), nullable=False),
        sa.Column('interests', sa.JSON(), nullable=False),
        sa.Column('average_rating', sa.Float(), nullable=True),
        sa.Column('no_show_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('trips_hosted', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('reliability_badge', reliability_badge, nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_students_email', 'students', ['email'], unique=True)
    op.create_index('ix_students_city', 'students', ['city'])
    op.create_index('ix_students_status', 'students', ['status'])

    op.create_table(
        'student_availability',
        sa.Column('id', sa.String(length=32), primary_key=True),
        sa.Column(
            'student_id',
            sa.String(length=32),
            sa.ForeignKey('students.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('day_of_week', sa.Integer(), nullable=False),
        sa.Column('start_time', sa.String(), nullable=False),
        sa.Column('end_time', sa.String(), nullable=False),
        sa.Column('note', sa.String(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_student_availability_student_id', 'student_availability', ['student_id'])

    op.create_table(
        'tourist_requests',
        sa.Column('id', sa.String(length=32), primary_key=True),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('tourist_name', sa.String(), nullable=True),
        sa.Column('phone', sa.String(), nullable=True),
        sa.Column('whatsapp', sa.String(), nullable=True),
        sa.Column('contact_method', sa.String(), nullable=False),
        sa.Column('city', sa.String(), nullable=False),
        sa.Column('dates', sa.JSON(), nullable=False),
        sa.Column('preferred_time', sa.String(), nullable=False),
        sa.Column('number_of_guests', sa.Integer(), nullable=False),
        sa.Column('group_type', sa.String(), nullable=False),
        sa.Column('service_type', sa.String(), nullable=False),
        sa.Column('preferred_nationality', sa.String(), nullable=True),
        sa.Column('preferred_languages', sa.JSON(), nullable=False),
        sa.Column('preferred_gender', sa.String(), nullable=True),
        sa.Column('interests', sa.JSON(), nullable=False),
        sa.Column('budget', sa.Float(), nullable=True),
        sa.Column('trip_notes', sa.Text(), nullable=True),
        sa.Column('status', request_status, nullable=False),
        sa.Column(
            'assigned_student_id',
            sa.String(length=32),
            sa.ForeignKey('students.id', ondelete='SET NULL'),
            nullable=True,
        ),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_tourist_requests_email', 'tourist_requests', ['email'])
    op.create_index('ix_tourist_requests_city', 'tourist_requests', ['city'])
    op.create_index('ix_tourist_requests_status', 'tourist_requests', ['status'])
    op.create_index(
        'ix_tourist_requests_assigned_student_id', 'tourist_requests', ['assigned_student_id']
    )

    op.create_table(
        'request_selections',
        sa.Column('id', sa.String(length=32), primary_key=True),
        sa.Column(
            'request_id',
            sa.String(length=32),
            sa.ForeignKey('tourist_requests.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column(
            'student_id',
            sa.String(length=32),
            sa.ForeignKey('students.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('status', selection_status, nullable=False),
        sa.Column('accepted_at', sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('request_id', 'student_id', name='uq_request_selection_pair'),
    )
    op.create_index('ix_request_selections_request_id', 'request_selections', ['request_id'])
    op.create_index('ix_request_selections_student_id', 'request_selections', ['student_id'])

    op.create_table(
        'reviews',
        sa.Column('id', sa.String(length=32), primary_key=True),
        sa.Column(
            'request_id',
            sa.String(length=32),
            sa.ForeignKey('tourist_requests.id'),
            nullable=False,
            unique=True,
        ),
        sa.Column('student_id', sa.String(length=32), sa.ForeignKey('students.id'), nullable=False),
        sa.Column('rating', sa.Integer(), nullable=False),
        sa.Column('text', sa.Text(), nullable=True),
        sa.Column('attributes', sa.JSON(), nullable=False),
        sa.Column('no_show', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('price_paid', sa.Float(), nullable=True),
        sa.Column('is_anonymous', sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
    )
    op.create_index('ix_reviews_student_id', 'reviews', ['student_id'])


def downgrade() -> None:
    op.drop_index('ix_reviews_student_id', table_name='reviews')
    op.drop_table('reviews')
    op.drop_index('ix_request_selections_student_id', table_name='request_selections')
    op.drop_index('ix_request_selections_request_id', table_name='request_selections')
    op.drop_table('request_selections')
    op.drop_index('ix_tourist_requests_assigned_student_id', table_name='tourist_requests')
    op.drop_index('ix_tourist_requests_status', table_name='tourist_requests')
    op.drop_index('ix_tourist_requests_city', table_name='tourist_requests')
    op.drop_index('ix_tourist_requests_email', table_name='tourist_requests')
    op.drop_table('tourist_requests')
    op.drop_index('ix_student_availability_student_id', table_name='student_availability')
    op.drop_table('student_availability')
    op.drop_index('ix_students_status', table_name='students')
    op.drop_index('ix_students_city', table_name='students')
    op.drop_index('ix_students_email', table_name='students')
    op.drop_table('students')
    for enum_type in (selection_status, request_status, reliability_badge, student_status):
        enum_type.drop(op.get_bind(), checkfirst=True)
