"""Conversations table with JSONB messages and RLS policies.

Revision ID: 001
Revises:
Create Date: 2026-10-17
"""

from alembic import op

# revision identifiers, used by Alembic.
revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.execute("""
        CREATE TABLE conversations (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            title TEXT NOT NULL DEFAULT '新对话',
            messages JSONB NOT NULL DEFAULT '[]'::jsonb,
            is_archived BOOLEAN NOT NULL DEFAULT false,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)

    op.execute("""
        CREATE INDEX idx_conversations_user_updated
        ON conversations (user_id, is_archived, updated_at DESC);
    """)

    op.execute("ALTER TABLE conversations ENABLE ROW LEVEL SECURITY")
    op.execute("ALTER TABLE conversations FORCE ROW LEVEL SECURITY")

    # An empty app.user_id marks a system connection (test setup, maintenance)
    op.execute("""
        CREATE POLICY conversations_all_own
        ON conversations
        FOR ALL
        USING (
            NULLIF(current_setting('app.user_id', true), '') IS NULL
            OR user_id = current_setting('app.user_id', true)
        )
        WITH CHECK (
            NULLIF(current_setting('app.user_id', true), '') IS NULL
            OR user_id = current_setting('app.user_id', true)
        );
    """)


def downgrade():
    op.execute("DROP POLICY IF EXISTS conversations_all_own ON conversations")
    op.execute("DROP TABLE IF EXISTS conversations")
