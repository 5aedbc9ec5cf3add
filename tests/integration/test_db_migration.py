from __future__ import annotations

import os
import sqlite3
import subprocess
import sys
from pathlib import Path

import pytest

EXPECTED_TABLES = {
    "jobs",
    "applicants",
    "submissions",
    "parsed_profiles",
    "resumes",
    "rankings",
    "embeddings",
    "processing_jobs",
    "processing_logs",
}


def _tables(cur: sqlite3.Cursor) -> set[str]:
    cur.execute("SELECT name FROM sqlite_master WHERE type='table'")
    return {row[0] for row in cur.fetchall()}


def test_alembic_upgrade_and_downgrade_initial_schema(tmp_path: Path) -> None:
    repo_root = Path(__file__).resolve().parents[2]
    db_path = tmp_path / "migration_test.db"
    env = os.environ.copy()
    env["DATABASE_URL"] = f"sqlite:///{db_path}"

    subprocess.run(
        [sys.executable, "-m", "alembic", "-c", "alembic.ini", "upgrade", "head"],
        cwd=repo_root,
        env=env,
        check=True,
    )

    conn = sqlite3.connect(db_path)
    cur = conn.cursor()
    assert EXPECTED_TABLES <= _tables(cur)

    cur.execute("PRAGMA table_info(processing_jobs)")
    run_cols = {row[1] for row in cur.fetchall()}
    assert {"status", "processed_count", "failed_applicants_json", "duration_ms"} <= run_cols

    cur.execute("PRAGMA index_list(processing_jobs)")
    indexes = {row[1]: row[2] for row in cur.fetchall()}
    assert indexes.get("uq_processing_jobs_one_running") == 1

    stamp = "2026-01-01 00:00:00"
    cur.execute(
        "INSERT INTO jobs (title, job_code, description, custom_instructions, created_at, updated_at)"
        " VALUES ('Role', '', '', '', ?, ?)",
        (stamp, stamp),
    )
    job_id = cur.lastrowid
    insert_run = (
        "INSERT INTO processing_jobs (job_id, status, errors_json, successful_applicants_json,"
        " failed_applicants_json, created_at, updated_at)"
        " VALUES (?, ?, '[]', '[]', '[]', ?, ?)"
    )
    cur.execute(insert_run, (job_id, "running", stamp, stamp))
    cur.execute(insert_run, (job_id, "completed", stamp, stamp))
    with pytest.raises(sqlite3.IntegrityError):
        cur.execute(insert_run, (job_id, "running", stamp, stamp))
    conn.commit()
    conn.close()

    subprocess.run(
        [sys.executable, "-m", "alembic", "-c", "alembic.ini", "downgrade", "base"],
        cwd=repo_root,
        env=env,
        check=True,
    )

    conn = sqlite3.connect(db_path)
    assert not (EXPECTED_TABLES & _tables(conn.cursor()))
    conn.close()
