"""one in-progress attempt per student per assessment
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0002_in_progress_attempt_unique'
down_revision = '0001_initial'
branch_labels = None
depends_on = None

INDEX_NAME = 'uq_attempt_in_progress'


def upgrade():
    inspector = sa.inspect(op.get_bind())
    if INDEX_NAME in {ix['name'] for ix in inspector.get_indexes('attempt')}:
        return
    op.create_index(
        INDEX_NAME,
        'attempt',
        ['assessment_id', 'user_id'],
        unique=True,
        sqlite_where=sa.text("status = 'IN_PROGRESS'"),
        postgresql_where=sa.text("status = 'IN_PROGRESS'"),
    )


def downgrade():
    op.drop_index(INDEX_NAME, table_name='attempt')
