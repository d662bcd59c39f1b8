from dataclasses import dataclass, field
from enum import Enum


class FileMode(str, Enum):
    FILE = "100644"
    EXECUTABLE = "100755"
    SUBMODULE = "160000"

    @property
    def object_type(self) -> str:
        return "commit" if self is FileMode.SUBMODULE else "blob"


@dataclass(frozen=True)
class TreeEntry:
    """One path of a tree. ``blob_id`` is None for a deletion marker."""
    path: str
    blob_id: str | None
    mode: FileMode = FileMode.FILE

    def same_content(self, other: "TreeEntry | None") -> bool:
        return other is not None and other.blob_id == self.blob_id and other.mode == self.mode


@dataclass(frozen=True)
class Commit:
    id: str
    tree_id: str
    message: str
    parents: tuple[str, ...] = ()


@dataclass(frozen=True)
class FileChange:
    """A file touched by a commit, relative to its first parent."""
    path: str
    status: str
    blob_id: str | None = None
    previous_path: str | None = None


@dataclass(frozen=True)
class Change:
    """
    One entry of a change set handed to the graph builder.

    Exactly one of ``content`` (new bytes), ``blob_id`` (an existing blob)
    or ``delete`` is set.
    """
    path: str
    content: bytes | None = None
    blob_id: str | None = None
    delete: bool = False
    mode: FileMode = FileMode.FILE

    @classmethod
    def deletion(cls, path: str) -> "Change":
        return cls(path=path, delete=True)

    @classmethod
    def from_entry(cls, entry: TreeEntry) -> "Change":
        return cls(path=entry.path, blob_id=entry.blob_id, mode=entry.mode)


@dataclass(frozen=True)
class ReviewRequest:
    number: int
    url: str
    head: str
    base: str


@dataclass(frozen=True)
class CommitResult:
    commit_id: str
    branch: str
    parent_id: str
    tree_id: str
    files: tuple[str, ...] = ()
    created: bool = True

    def to_dict(self) -> dict:
        return {
            "commitId": self.commit_id,
            "branch": self.branch,
            "parentId": self.parent_id,
            "treeId": self.tree_id,
            "files": list(self.files),
            "created": self.created,
        }


@dataclass(frozen=True)
class AppliedPick:
    source_id: str
    commit_id: str
    message: str = ""
    files: tuple[str, ...] = ()
    empty: bool = False

    def to_dict(self) -> dict:
        return {
            "source": self.source_id,
            "commitId": self.commit_id,
            "message": self.message,
            "files": list(self.files),
            "empty": self.empty,
        }


@dataclass(frozen=True)
class CherryPickResult:
    target_branch: str
    base_id: str
    applied: tuple[AppliedPick, ...] = ()

    @property
    def applied_commit_ids(self) -> list[str]:
        return [pick.commit_id for pick in self.applied]

    @property
    def tip(self) -> str:
        return self.applied[-1].commit_id if self.applied else self.base_id

    def to_dict(self) -> dict:
        return {
            "targetBranch": self.target_branch,
            "baseId": self.base_id,
            "tip": self.tip,
            "appliedCommitIds": self.applied_commit_ids,
            "applied": [pick.to_dict() for pick in self.applied],
        }


@dataclass(frozen=True)
class ReviewResult:
    review: ReviewRequest
    branch: str
    applied: tuple[AppliedPick, ...] = ()

    def to_dict(self) -> dict:
        return {
            "reviewId": self.review.number,
            "url": self.review.url,
            "branch": self.branch,
            "targetBranch": self.review.base,
            "appliedCommitIds": [pick.commit_id for pick in self.applied],
        }


@dataclass(frozen=True)
class IntegrationResult:
    review_id: int
    merge_commit_id: str
    branch: str

    def to_dict(self) -> dict:
        return {
            "reviewId": self.review_id,
            "mergeCommitId": self.merge_commit_id,
            "branch": self.branch,
        }


@dataclass(frozen=True)
class PromotionResult:
    source: str
    destination: str
    commit_id: str
    merged: bool

    def to_dict(self) -> dict:
        return {
            "source": self.source,
            "destination": self.destination,
            "commitId": self.commit_id,
            "merged": self.merged,
        }


@dataclass(frozen=True)
class SelectivePromotionResult:
    source: str
    destination: str
    applied: tuple[AppliedPick, ...] = ()
    failed: dict | None = None

    def to_dict(self) -> dict:
        return {
            "source": self.source,
            "destination": self.destination,
            "applied": [pick.to_dict() for pick in self.applied],
            "failed": self.failed,
        }


@dataclass(frozen=True)
class AuditEntry:
    commit_id: str
    branch: str
    message: str
    timestamp: str
    files: tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict:
        return {
            "sha": self.commit_id,
            "branch": self.branch,
            "message": self.message,
            "files": list(self.files),
            "timestamp": self.timestamp,
        }
