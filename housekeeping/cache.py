"""
HOUSEKEEPING CORE - Read Snapshot Cache
=======================================
Keeps the last good rows read from each table. Reads that fail fall back to
these before falling back to the built-in datasets.

In memory always; mirrored to {snapshot_dir}/{table}.json when a directory
is configured, so a restart while offline still serves recent data.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger("housekeeping.cache")


class SnapshotCache:
    """Last-good rows per table"""

    def __init__(self, snapshot_dir: Optional[str] = None):
        self._rows: Dict[str, List[Dict[str, Any]]] = {}
        self.snapshot_dir = Path(snapshot_dir) if snapshot_dir else None
        if self.snapshot_dir:
            self.snapshot_dir.mkdir(parents=True, exist_ok=True)

    def _get_snapshot_file(self, table: str) -> Path:
        return self.snapshot_dir / f"{table}.json"

    def put(self, table: str, rows: List[Dict[str, Any]]) -> None:
        self._rows[table] = list(rows)
        if not self.snapshot_dir:
            return

        file_path = self._get_snapshot_file(table)
        payload = {
            "table": table,
            "saved_at": datetime.now(timezone.utc).isoformat(),
            "rows": rows,
        }
        try:
            with open(file_path, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2, default=str, ensure_ascii=False)
        except OSError as e:
            logger.warning(f"Could not write snapshot {file_path}: {e}")

    def get(self, table: str) -> Optional[List[Dict[str, Any]]]:
        if table in self._rows:
            return list(self._rows[table])
        if not self.snapshot_dir:
            return None

        file_path = self._get_snapshot_file(table)
        if not file_path.exists():
            return None
        try:
            with open(file_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Error reading snapshot {file_path}: {e}")
            return None

        rows = data.get("rows", [])
        self._rows[table] = rows
        logger.info(f"Loaded snapshot for {table} ({len(rows)} rows, saved {data.get('saved_at')})")
        return list(rows)

    def list_snapshots(self) -> List[Dict[str, Any]]:
        """Tables with a snapshot, most recent first"""
        snapshots = []
        if self.snapshot_dir:
            for file_path in self.snapshot_dir.glob("*.json"):
                try:
                    with open(file_path, "r", encoding="utf-8") as f:
                        data = json.load(f)
                    snapshots.append({
                        "table": data["table"],
                        "rows": len(data.get("rows", [])),
                        "saved_at": data["saved_at"],
                    })
                except (OSError, ValueError, KeyError) as e:
                    logger.warning(f"Error reading {file_path}: {e}")
        else:
            for table, rows in self._rows.items():
                snapshots.append({"table": table, "rows": len(rows), "saved_at": None})

        return sorted(snapshots, key=lambda x: x["saved_at"] or "", reverse=True)
