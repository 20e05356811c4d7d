"""initial create tables
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0001_initial'
down_revision = None
branch_labels = None
depends_on = None

TABLES = ('assessment', 'question', 'attempt', 'answer')


def upgrade():
    # Use SQLModel metadata creation to ensure consistency
    from sqlmodel import SQLModel
    import assessments.models  # noqa: F401
    bind = op.get_bind()
    SQLModel.metadata.create_all(bind, tables=[SQLModel.metadata.tables[t] for t in TABLES])


def downgrade():
    from sqlmodel import SQLModel
    import assessments.models  # noqa: F401
    bind = op.get_bind()
    SQLModel.metadata.drop_all(bind, tables=[SQLModel.metadata.tables[t] for t in TABLES])
