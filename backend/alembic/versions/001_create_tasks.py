# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""create tasks table with workspace row level security

Revision ID: 001_create_tasks
Revises:
Create Date: 2025-06-02 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001_create_tasks'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create the tasks table; on PostgreSQL also enable tenant RLS."""
    op.create_table(
        'tasks',
        sa.Column('id', sa.String(64), primary_key=True),
        sa.Column('workspace_id', sa.String(64), nullable=False),
        sa.Column('title', sa.String(500), nullable=False),

        # Optimistic locking
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),

        # Timestamps
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_index(
        'ix_tasks_workspace_created',
        'tasks',
        ['workspace_id', 'created_at']
    )

    if op.get_bind().dialect.name == 'postgresql':
        # Rows are visible only to the workspace set by set_workspace_scope()
        op.execute("ALTER TABLE tasks ENABLE ROW LEVEL SECURITY")
        op.execute("ALTER TABLE tasks FORCE ROW LEVEL SECURITY")
        op.execute(
            """
            CREATE POLICY tasks_workspace_isolation ON tasks
            USING (workspace_id = current_setting('app.current_workspace_id', true))
            WITH CHECK (workspace_id = current_setting('app.current_workspace_id', true))
            """
        )

    print("Created tasks table with indexes")


def downgrade() -> None:
    """Drop the tasks table."""
    if op.get_bind().dialect.name == 'postgresql':
        op.execute("DROP POLICY IF EXISTS tasks_workspace_isolation ON tasks")

    op.drop_index('ix_tasks_workspace_created', table_name='tasks')
    op.drop_table('tasks')

    print("Dropped tasks table")
