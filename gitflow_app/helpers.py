import posixpath

from .errors import InvalidChangeSet
from .objects import Commit, FileChange, FileMode, TreeEntry


def normalize_path(path: str) -> str:
    """Repository-relative POSIX path, no leading slash, no '..' segments."""
    norm = (path or "").replace("\\", "/").strip()
    norm = posixpath.normpath(norm).lstrip("/") if norm else ""
    if not norm or norm == "." or norm.split("/")[0] == "..":
        raise InvalidChangeSet(f"Invalid path '{path}'", operation="commit", identifier=path or "")
    return norm


def parse_mode(raw: str) -> FileMode:
    try:
        return FileMode(raw)
    except ValueError:
        # symlinks and other modes are carried as plain files
        return FileMode.FILE


def parse_tree(payload: dict) -> dict[str, TreeEntry]:
    entries = {}
    for item in payload.get("tree", []):
        if item.get("type") == "tree":
            continue
        entries[item["path"]] = TreeEntry(
            path=item["path"],
            blob_id=item["sha"],
            mode=parse_mode(item.get("mode", FileMode.FILE.value)),
        )
    return entries


def parse_commit(payload: dict) -> Commit:
    return Commit(
        id=payload["sha"],
        tree_id=payload["tree"]["sha"],
        message=payload.get("message", ""),
        parents=tuple(p["sha"] for p in payload.get("parents", [])),
    )


def parse_file_changes(files: list[dict]) -> list[FileChange]:
    changes = []
    for item in files:
        status = item.get("status", "modified")
        changes.append(FileChange(
            path=item["filename"],
            status=status,
            blob_id=None if status == "removed" else item.get("sha"),
            previous_path=item.get("previous_filename"),
        ))
    return changes


def tree_entry_payload(entry: TreeEntry) -> dict:
    return {
        "path": entry.path,
        "mode": entry.mode.value,
        "type": entry.mode.object_type,
        "sha": entry.blob_id,
    }
