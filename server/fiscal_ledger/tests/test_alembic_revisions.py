from pathlib import Path

from fiscal_ledger.db import Base
import fiscal_ledger.models  # noqa: F401  registers every table on Base.metadata

VERSIONS_DIR = Path(__file__).resolve().parents[2] / "alembic" / "versions"


def _revision_ids() -> dict[str, str]:
    revisions = {}
    for migration_file in VERSIONS_DIR.glob("*.py"):
        text = migration_file.read_text(encoding="utf-8")
        marker = 'revision = "'
        idx = text.find(marker)
        if idx == -1:
            continue
        start = idx + len(marker)
        revisions[migration_file.name] = text[start:text.find('"', start)]
    return revisions


def test_alembic_revision_ids_fit_version_table_limit():
    """Postgres alembic_version.version_num is varchar(32)."""
    too_long = [(name, revision, len(revision)) for name, revision in _revision_ids().items() if len(revision) > 32]

    assert not too_long, (
        "Alembic revision IDs must be <= 32 chars to fit alembic_version.version_num. "
        f"Found: {too_long}"
    )


def test_initial_migration_creates_every_model_table():
    text = (VERSIONS_DIR / "0001_initial.py").read_text(encoding="utf-8")
    missing = sorted(name for name in Base.metadata.tables if f'"{name}"' not in text)
    assert not missing, f"Tables missing from the initial migration: {missing}"
