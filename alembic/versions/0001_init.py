from alembic import op
import sqlalchemy as sa

revision = '0001_init'
down_revision = None
branch_labels = None
depends_on = None

def upgrade():
    op.create_table('profiles',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('display_name', sa.String(200)),
        sa.Column('role', sa.String(16), nullable=False, server_default='member'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table('auth_sessions',
        sa.Column('token', sa.String(128), primary_key=True),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('profiles.id', ondelete='CASCADE'), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True)),
    )
    op.create_index('ix_auth_sessions_user_id', 'auth_sessions', ['user_id'])

    op.create_table('teams',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String(200), nullable=False),
    )

    op.create_table('team_members',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('team_id', sa.String(36), sa.ForeignKey('teams.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('profiles.id', ondelete='CASCADE'), nullable=False),
        sa.UniqueConstraint('team_id', 'user_id', name='uq_team_member'),
    )
    op.create_index('ix_team_members_team_id', 'team_members', ['team_id'])
    op.create_index('ix_team_members_user_id', 'team_members', ['user_id'])

    op.create_table('challenges',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('week_index', sa.Integer, nullable=False, server_default='0'),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('description', sa.Text),
        sa.Column('start_date', sa.String(40)),
        sa.Column('end_date', sa.String(40)),
        sa.Column('base_points', sa.Integer, nullable=False, server_default='0'),
        sa.Column('team_ids', sa.JSON),
        sa.Column('hidden', sa.Boolean, nullable=False, server_default='false'),
        sa.Column('metric_type', sa.String(16), nullable=False, server_default='manual'),
        sa.Column('target_value', sa.Float),
        sa.Column('target_unit', sa.String(32)),
        sa.Column('activity_types', sa.JSON),
    )

    op.create_table('strava_connections',
        sa.Column('user_id', sa.String(36), sa.ForeignKey('profiles.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('athlete_id', sa.BigInteger),
        sa.Column('access_token', sa.String(512), nullable=False),
        sa.Column('refresh_token', sa.String(512), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True)),
        sa.Column('scope', sa.String(200)),
        sa.Column('last_synced_at', sa.DateTime(timezone=True)),
        sa.Column('last_error', sa.Text),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_strava_connections_athlete_id', 'strava_connections', ['athlete_id'])
    op.create_index('strava_connections_expiry_idx', 'strava_connections', ['expires_at'])

    op.create_table('strava_activity_ingestions',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('profiles.id', ondelete='CASCADE'), nullable=False),
        sa.Column('activity_id', sa.BigInteger, nullable=False),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('raw_payload', sa.JSON),
        sa.UniqueConstraint('user_id', 'activity_id', name='uq_ingestion_user_activity'),
    )

    op.create_table('submission_progress',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('profiles.id', ondelete='CASCADE'), nullable=False),
        sa.Column('challenge_id', sa.String(36), sa.ForeignKey('challenges.id', ondelete='CASCADE'), nullable=False),
        sa.Column('activity_id', sa.BigInteger, nullable=False),
        sa.Column('progress_value', sa.Float, nullable=False),
        sa.Column('target_value', sa.Float),
        sa.Column('completed', sa.Boolean, nullable=False, server_default='false'),
        sa.Column('completed_at', sa.DateTime(timezone=True)),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('challenge_id', 'user_id', 'activity_id', name='uq_progress_activity'),
    )
    op.create_index('submission_progress_user_challenge_idx', 'submission_progress', ['user_id', 'challenge_id'])

    op.create_table('submissions',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('profiles.id', ondelete='CASCADE'), nullable=False),
        sa.Column('challenge_id', sa.String(36), sa.ForeignKey('challenges.id', ondelete='CASCADE'), nullable=False),
        sa.Column('completed', sa.Boolean, nullable=False, server_default='false'),
        sa.Column('completed_at', sa.DateTime(timezone=True)),
        sa.Column('progress_value', sa.Float),
        sa.Column('progress_percent', sa.Float),
        sa.UniqueConstraint('challenge_id', 'user_id', name='uq_submission'),
    )
    op.create_index('ix_submissions_user_id', 'submissions', ['user_id'])

    op.create_table('strava_sync_logs',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column('athlete_id', sa.BigInteger),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('finished_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('since', sa.DateTime(timezone=True)),
        sa.Column('fetched_activities', sa.Integer),
        sa.Column('processed_activities', sa.Integer),
        sa.Column('matched_activities', sa.Integer),
        sa.Column('progress_updates', sa.Integer),
        sa.Column('sample_activities', sa.JSON),
        sa.Column('status', sa.String(16), nullable=False),
        sa.Column('error', sa.Text),
    )
    op.create_index('ix_strava_sync_logs_user_id', 'strava_sync_logs', ['user_id'])

    op.create_table('late_completion_requests',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('profiles.id', ondelete='CASCADE'), nullable=False),
        sa.Column('challenge_id', sa.String(36), sa.ForeignKey('challenges.id', ondelete='CASCADE'), nullable=False),
        sa.Column('status', sa.String(16), nullable=False, server_default='pending'),
        sa.Column('requested_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('resolved_at', sa.DateTime(timezone=True)),
        sa.Column('resolved_by', sa.String(36)),
        sa.UniqueConstraint('user_id', 'challenge_id', name='late_completion_unique_user_challenge'),
    )

def downgrade():
    op.drop_table('late_completion_requests')
    op.drop_index('ix_strava_sync_logs_user_id', table_name='strava_sync_logs')
    op.drop_table('strava_sync_logs')
    op.drop_index('ix_submissions_user_id', table_name='submissions')
    op.drop_table('submissions')
    op.drop_index('submission_progress_user_challenge_idx', table_name='submission_progress')
    op.drop_table('submission_progress')
    op.drop_table('strava_activity_ingestions')
    op.drop_index('strava_connections_expiry_idx', table_name='strava_connections')
    op.drop_index('ix_strava_connections_athlete_id', table_name='strava_connections')
    op.drop_table('strava_connections')
    op.drop_table('challenges')
    op.drop_index('ix_team_members_user_id', table_name='team_members')
    op.drop_index('ix_team_members_team_id', table_name='team_members')
    op.drop_table('team_members')
    op.drop_table('teams')
    op.drop_index('ix_auth_sessions_user_id', table_name='auth_sessions')
    op.drop_table('auth_sessions')
    op.drop_table('profiles')
