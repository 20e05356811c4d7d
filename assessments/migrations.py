from alembic.config import Config
from alembic import command
import os

ALEMBIC_INI = os.path.join(os.path.dirname(__file__), '..', 'alembic.ini')


def _config(url: str | None = None) -> Config:
    cfg = Config(ALEMBIC_INI)
    # Ensure SQLAlchemy URL uses env DATABASE_URL if set
    url = url or os.getenv('DATABASE_URL')
    if url:
        cfg.set_main_option('sqlalchemy.url', url)
    return cfg


def upgrade_head(url: str | None = None):
    # programmatically run `alembic upgrade head`
    command.upgrade(_config(url), 'head')


def downgrade_base(url: str | None = None):
    command.downgrade(_config(url), 'base')
