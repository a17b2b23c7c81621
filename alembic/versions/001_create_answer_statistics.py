"""Create answer sessions and user statistics

Revision ID: 001_create_answer_statistics
Revises:
Create Date: 2024-03-01

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSON


# revision identifiers, used by Alembic.
revision = '001_create_answer_statistics'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('username', sa.String(100), nullable=False, unique=True, index=True),
        sa.Column('email', sa.String(255), unique=True),
        sa.Column('is_active', sa.Boolean, default=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        'questions',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('question_text', sa.Text, nullable=False),
        sa.Column('options', JSON),
        sa.Column('correct_answer', sa.Text, nullable=False),
        sa.Column('explanation', sa.Text),
        sa.Column('difficulty', sa.String(20), default='easy'),
        sa.Column('primary_topic', sa.String(200)),
        sa.Column('is_active', sa.Boolean, default=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        'answer_sessions',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.Integer, sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('question_id', sa.Integer, sa.ForeignKey('questions.id', ondelete='CASCADE'), nullable=False),
        sa.Column('selected_answer', sa.Text),
        sa.Column('is_correct', sa.Boolean, nullable=False, default=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False, index=True),
        sa.Column('completed_at', sa.DateTime(timezone=True)),
        sa.Column('duration_ms', sa.Integer),
    )

    # One open session per (user, question); completed rows are unrestricted
    op.create_index(
        'uq_answer_sessions_in_progress',
        'answer_sessions',
        ['user_id', 'question_id'],
        unique=True,
        postgresql_where=sa.text('completed_at IS NULL'),
    )
    op.create_index('ix_answer_sessions_user_completed', 'answer_sessions', ['user_id', 'completed_at'])

    op.create_table(
        'user_statistics',
        sa.Column('user_id', sa.Integer, sa.ForeignKey('users.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('total_questions', sa.Integer, nullable=False, default=0),
        sa.Column('correct_answers', sa.Integer, nullable=False, default=0),
        sa.Column('accuracy_percent', sa.Float, nullable=False, default=0.0),
        sa.Column('average_duration_ms', sa.Integer, nullable=False, default=0),
        sa.Column('per_difficulty', JSON, default={}),
        sa.Column('per_topic', JSON, default={}),
        sa.Column('last_recomputed_at', sa.DateTime(timezone=True), nullable=False, index=True),
    )


def downgrade() -> None:
    op.drop_table('user_statistics')

    op.drop_index('ix_answer_sessions_user_completed')
    op.drop_index('uq_answer_sessions_in_progress')
    op.drop_table('answer_sessions')

    op.drop_table('questions')
    op.drop_table('users')
