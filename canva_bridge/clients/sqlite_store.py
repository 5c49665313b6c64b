"""SQLite-backed record store for artifacts returned from Canva."""

from __future__ import annotations

import sqlite3
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional


class ArtifactRecordStore:
    """Persist one row per exported design so the gallery can list them."""

    def __init__(self, db_path: str) -> None:
        self._db_path = Path(db_path)
        if self._db_path.parent and not self._db_path.parent.exists():
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS canva_artifacts (
                    id TEXT PRIMARY KEY,
                    url TEXT NOT NULL,
                    design_id TEXT NOT NULL,
                    correlation_state TEXT,
                    image_format TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
                """
            )

    def add_artifact(
        self,
        *,
        url: str,
        design_id: str,
        correlation_state: Optional[str],
        image_format: str,
    ) -> Dict[str, Any]:
        record = {
            "id": uuid.uuid4().hex,
            "url": url,
            "design_id": design_id,
            "correlation_state": correlation_state,
            "image_format": image_format,
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO canva_artifacts
                    (id, url, design_id, correlation_state, image_format, created_at)
                VALUES (:id, :url, :design_id, :correlation_state, :image_format, :created_at)
                """,
                record,
            )
        return record

    def get_artifact(self, artifact_id: str) -> Optional[Dict[str, Any]]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM canva_artifacts WHERE id = ?", (artifact_id,)
            ).fetchone()
        return dict(row) if row else None

    def list_for_design(self, design_id: str) -> list[Dict[str, Any]]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM canva_artifacts WHERE design_id = ? ORDER BY created_at DESC",
                (design_id,),
            ).fetchall()
        return [dict(row) for row in rows]


__all__ = ["ArtifactRecordStore"]
