"""
Append-only audit trail of successful graph mutations.

The trail is best-effort: the branch ref is the authoritative record, so a
failing sink is logged and never undoes a mutation that already happened.
"""
import json
import logging
import os
from datetime import datetime, timezone

from django.db import DatabaseError

from .errors import AuditError, AuditUnavailable
from .objects import AuditEntry

logger = logging.getLogger(__name__)


class MemoryAuditSink:
    def __init__(self):
        self.records = []

    def append(self, entry: AuditEntry) -> None:
        self.records.append(entry)

    def entries(self) -> list[AuditEntry]:
        return list(reversed(self.records))


class JsonFileAuditSink:
    """
    Keeps the trail as a JSON list in a single file.

    Appends are read-modify-write; two concurrent writers can lose an update.
    """

    def __init__(self, path: str):
        self.path = path

    def _load(self) -> list[dict]:
        try:
            with open(self.path, "r") as f:
                data = json.load(f)
        except FileNotFoundError:
            return []
        except json.JSONDecodeError as exc:
            raise AuditError(f"Audit log {self.path} is not valid JSON: {exc}") from exc
        if not isinstance(data, list):
            raise AuditError(f"Audit log {self.path} does not hold a list")
        return data

    def append(self, entry: AuditEntry) -> None:
        records = self._load()
        records.append(entry.to_dict())
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(self.path, "w") as f:
            json.dump(records, f, indent=2)

    def entries(self) -> list[AuditEntry]:
        return [
            AuditEntry(
                commit_id=r["sha"],
                branch=r.get("branch", ""),
                message=r.get("message", ""),
                timestamp=r.get("timestamp", ""),
                files=tuple(r.get("files", [])),
            )
            for r in reversed(self._load())
        ]


class DatabaseAuditSink:
    def append(self, entry: AuditEntry) -> None:
        from .models import AuditRecord

        AuditRecord.objects.create(
            commit_id=entry.commit_id,
            branch=entry.branch,
            message=entry.message,
            files=list(entry.files),
            created_at=datetime.fromisoformat(entry.timestamp),
        )

    def entries(self) -> list[AuditEntry]:
        from .models import AuditRecord

        return [
            AuditEntry(
                commit_id=r.commit_id,
                branch=r.branch,
                message=r.message,
                timestamp=r.created_at.isoformat(),
                files=tuple(r.files),
            )
            for r in AuditRecord.objects.all()
        ]


class AuditLog:
    def __init__(self, sink):
        self.sink = sink

    def record(self, commit_id: str, files, message: str, branch: str) -> AuditEntry:
        entry = AuditEntry(
            commit_id=commit_id,
            branch=branch,
            message=message,
            timestamp=datetime.now(timezone.utc).isoformat(),
            files=tuple(files),
        )
        try:
            self.sink.append(entry)
        except (AuditError, OSError, DatabaseError):
            logger.exception("Failed to append audit record for %s on %s", commit_id, branch)
        return entry

    def entries(self, branch: str | None = None, limit: int | None = None) -> list[AuditEntry]:
        try:
            records = self.sink.entries()
        except (AuditError, OSError, DatabaseError) as exc:
            raise AuditUnavailable(
                f"Audit log could not be read: {exc}", operation="audit", identifier=branch or "",
            ) from exc
        if branch:
            records = [r for r in records if r.branch == branch]
        if limit is not None:
            records = records[:limit]
        return records
