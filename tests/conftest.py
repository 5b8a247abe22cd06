# pyright: reportUnusedFunction=false
import os
from pathlib import Path
import sys
import tempfile

import pytest


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

# Must be set before docsync.core.config builds its module-level settings.
_TEST_DB_PATH = Path(tempfile.gettempdir()) / f"docsync-test-{os.getpid()}.db"
os.environ.setdefault("DATABASE_URL", f"sqlite+pysqlite:///{_TEST_DB_PATH}")
os.environ.setdefault("ENV", "test")


def _ensure_test_schema() -> None:
    from docsync.db.base import Base
    from docsync.main import app

    Base.metadata.create_all(bind=app.state.database.engine)


_ensure_test_schema()


@pytest.fixture(autouse=True)
def _isolate_db() -> None:
    from docsync.db.base import Base
    from docsync.main import app

    tables = list(Base.metadata.sorted_tables)
    if not tables:
        return

    with app.state.database.engine.begin() as conn:
        for t in reversed(tables):
            _ = conn.execute(t.delete())
