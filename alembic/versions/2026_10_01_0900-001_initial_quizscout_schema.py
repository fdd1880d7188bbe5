"""initial quizscout schema

Revision ID: 001
Revises:
Create Date: 2026-10-01 09:00:00.000000

"""
from typing import Sequence, Union

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    ]


def upgrade() -> None:
    """Create all tables with unique constraints and indexes."""

    # Create sources table
    op.create_table(
        'sources',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('slug', sa.String(length=100), nullable=False),
        sa.Column('base_url', sa.Text(), nullable=False),
        sa.Column('version', sa.String(length=20), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_sources_slug'), 'sources', ['slug'], unique=True)
    op.create_index(op.f('ix_sources_created_at'), 'sources', ['created_at'], unique=False)

    # Create countries table
    op.create_table(
        'countries',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('code', sa.String(length=2), nullable=False, comment='ISO alpha-2, upper case'),
        sa.Column('slug', sa.String(length=100), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('slug')
    )
    op.create_index(op.f('ix_countries_code'), 'countries', ['code'], unique=True)
    op.create_index(op.f('ix_countries_created_at'), 'countries', ['created_at'], unique=False)

    # Create cities table
    op.create_table(
        'cities',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('slug', sa.String(length=150), nullable=False),
        sa.Column('country_id', sa.Integer(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['country_id'], ['countries.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_cities_slug'), 'cities', ['slug'], unique=True)
    op.create_index(op.f('ix_cities_country_id'), 'cities', ['country_id'], unique=False)
    op.create_index(op.f('ix_cities_created_at'), 'cities', ['created_at'], unique=False)

    # Create venues table
    op.create_table(
        'venues',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('slug', sa.String(length=220), nullable=False),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('postcode', sa.String(length=20), nullable=True),
        sa.Column('latitude', sa.Float(), nullable=True),
        sa.Column('longitude', sa.Float(), nullable=True),
        sa.Column('place_id', sa.String(length=255), nullable=True, comment='External geocoder identity'),
        sa.Column('city_id', sa.Integer(), nullable=True),
        sa.Column('phone', sa.String(length=50), nullable=True),
        sa.Column('website', sa.Text(), nullable=True),
        sa.Column('facebook', sa.Text(), nullable=True),
        sa.Column('instagram', sa.Text(), nullable=True),
        sa.Column('metadata', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['city_id'], ['cities.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('place_id'),
        sa.UniqueConstraint('name', 'postcode', name='uq_venues_name_postcode')
    )
    op.create_index(op.f('ix_venues_name'), 'venues', ['name'], unique=False)
    op.create_index(op.f('ix_venues_slug'), 'venues', ['slug'], unique=True)
    op.create_index(op.f('ix_venues_postcode'), 'venues', ['postcode'], unique=False)
    op.create_index(op.f('ix_venues_city_id'), 'venues', ['city_id'], unique=False)
    op.create_index(op.f('ix_venues_created_at'), 'venues', ['created_at'], unique=False)

    # Create performers table
    op.create_table(
        'performers',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('source_id', sa.Integer(), nullable=False),
        sa.Column('profile_image', sa.String(length=255), nullable=True, comment='Stored asset filename'),
        sa.Column('profile_image_url', sa.Text(), nullable=True, comment='Source URL the profile image was fetched from'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['source_id'], ['sources.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name', 'source_id', name='uq_performers_name_source')
    )
    op.create_index(op.f('ix_performers_source_id'), 'performers', ['source_id'], unique=False)
    op.create_index(op.f('ix_performers_created_at'), 'performers', ['created_at'], unique=False)

    # Create events table
    op.create_table(
        'events',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('venue_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=250), nullable=False),
        sa.Column('day_of_week', sa.Integer(), nullable=False, comment='ISO weekday, 1 = Monday ... 7 = Sunday'),
        sa.Column('start_time', sa.Time(), nullable=False),
        sa.Column('frequency', sa.String(length=20), nullable=False, comment='weekly, biweekly, monthly, irregular'),
        sa.Column('entry_fee_cents', sa.Integer(), nullable=True, comment='None when unknown, 0 when free'),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('hero_image_url', sa.Text(), nullable=True),
        sa.Column('hero_image', sa.String(length=255), nullable=True),
        sa.Column('performer_id', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['venue_id'], ['venues.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['performer_id'], ['performers.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_events_venue_id'), 'events', ['venue_id'], unique=False)
    op.create_index(op.f('ix_events_performer_id'), 'events', ['performer_id'], unique=False)
    op.create_index(op.f('ix_events_created_at'), 'events', ['created_at'], unique=False)
    # One recurring event per venue and weekday; irregular events are keyed by source URL
    op.create_index(
        'uq_events_venue_day_recurring',
        'events',
        ['venue_id', 'day_of_week'],
        unique=True,
        postgresql_where=sa.text("frequency <> 'irregular'"),
    )

    # Create event_sources table
    op.create_table(
        'event_sources',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('event_id', sa.Integer(), nullable=False),
        sa.Column('source_id', sa.Integer(), nullable=False),
        sa.Column('source_url', sa.Text(), nullable=False),
        sa.Column('last_seen_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('metadata', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['event_id'], ['events.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['source_id'], ['sources.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('event_id', 'source_id', name='uq_event_sources_event_source')
    )
    op.create_index(op.f('ix_event_sources_event_id'), 'event_sources', ['event_id'], unique=False)
    op.create_index(op.f('ix_event_sources_source_id'), 'event_sources', ['source_id'], unique=False)
    op.create_index(op.f('ix_event_sources_source_url'), 'event_sources', ['source_url'], unique=False)
    op.create_index(op.f('ix_event_sources_last_seen_at'), 'event_sources', ['last_seen_at'], unique=False)
    op.create_index(op.f('ix_event_sources_created_at'), 'event_sources', ['created_at'], unique=False)

    # Create scraping_jobs table
    op.create_table(
        'scraping_jobs',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('job_type', sa.String(length=50), nullable=False, comment="'index' or 'detail'"),
        sa.Column('source', sa.String(length=50), nullable=False, comment='Source registry name'),
        sa.Column('parent_job_id', sa.Integer(), nullable=True),
        sa.Column('venue_identity', sa.Text(), nullable=True, comment='Candidate URL or name for detail jobs'),
        sa.Column('status', sa.String(length=20), nullable=False, comment="'queued', 'running', 'completed', 'retryable_failure', 'discarded', 'failed', 'interrupted'"),
        sa.Column('attempt', sa.Integer(), nullable=False),
        sa.Column('items_scraped', sa.Integer(), nullable=False, comment='Number of items successfully processed'),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('metadata', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['parent_job_id'], ['scraping_jobs.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_scraping_jobs_job_type'), 'scraping_jobs', ['job_type'], unique=False)
    op.create_index(op.f('ix_scraping_jobs_source'), 'scraping_jobs', ['source'], unique=False)
    op.create_index(op.f('ix_scraping_jobs_parent_job_id'), 'scraping_jobs', ['parent_job_id'], unique=False)
    op.create_index(op.f('ix_scraping_jobs_status'), 'scraping_jobs', ['status'], unique=False)
    op.create_index(op.f('ix_scraping_jobs_started_at'), 'scraping_jobs', ['started_at'], unique=False)
    op.create_index(op.f('ix_scraping_jobs_completed_at'), 'scraping_jobs', ['completed_at'], unique=False)

    # Create venue_duplicate_candidates table
    op.create_table(
        'venue_duplicate_candidates',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('venue_id', sa.Integer(), nullable=False),
        sa.Column('duplicate_of_id', sa.Integer(), nullable=False),
        sa.Column('confidence', sa.Float(), nullable=False),
        sa.Column('name_similarity', sa.Float(), nullable=False),
        sa.Column('location_similarity', sa.Float(), nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, comment="'pending', 'confirmed', 'dismissed'"),
        *_timestamps(),
        sa.CheckConstraint('venue_id < duplicate_of_id', name='ck_venue_duplicate_ordered'),
        sa.ForeignKeyConstraint(['venue_id'], ['venues.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['duplicate_of_id'], ['venues.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('venue_id', 'duplicate_of_id', name='uq_venue_duplicate_pair')
    )
    op.create_index(op.f('ix_venue_duplicate_candidates_venue_id'), 'venue_duplicate_candidates', ['venue_id'], unique=False)
    op.create_index(op.f('ix_venue_duplicate_candidates_duplicate_of_id'), 'venue_duplicate_candidates', ['duplicate_of_id'], unique=False)
    op.create_index(op.f('ix_venue_duplicate_candidates_created_at'), 'venue_duplicate_candidates', ['created_at'], unique=False)


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table('venue_duplicate_candidates')
    op.drop_table('scraping_jobs')
    op.drop_table('event_sources')
    op.drop_index('uq_events_venue_day_recurring', table_name='events')
    op.drop_table('events')
    op.drop_table('performers')
    op.drop_table('venues')
    op.drop_table('cities')
    op.drop_table('countries')
    op.drop_table('sources')
