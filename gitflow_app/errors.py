class GitFlowError(Exception):
    """Base for every named failure surfaced to callers."""

    status_code = 500

    def __init__(self, message: str, operation: str = "", identifier: str = ""):
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.identifier = identifier

    def to_dict(self) -> dict:
        return {
            "error": type(self).__name__,
            "message": self.message,
            "operation": self.operation,
            "identifier": self.identifier,
        }


class StaleRef(GitFlowError):
    """The branch moved away from the base the caller expected."""

    status_code = 409

    def __init__(self, branch: str, expected: str, actual: str, operation: str = "commit"):
        super().__init__(
            f"Branch '{branch}' is at {actual}, expected {expected}",
            operation=operation,
            identifier=branch,
        )
        self.expected = expected
        self.actual = actual

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update({"expected": self.expected, "actual": self.actual})
        return data


class RefConflict(GitFlowError):
    """A compare-and-set on a ref lost the race."""

    status_code = 409

    def __init__(self, message: str, operation: str = "update_ref", identifier: str = "",
                 expected: str | None = None, actual: str | None = None):
        super().__init__(message, operation=operation, identifier=identifier)
        self.expected = expected
        self.actual = actual

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update({"expected": self.expected, "actual": self.actual})
        return data


class InvalidChangeSet(GitFlowError):
    status_code = 400


class ConflictOnApply(GitFlowError):
    """A cherry-picked path no longer matches what the source commit changed."""

    status_code = 409

    def __init__(self, source_commit: str, path: str, target_branch: str, applied: list | None = None):
        super().__init__(
            f"Cherry-pick of {source_commit} conflicts on '{path}' in branch '{target_branch}'; "
            f"branch left unchanged",
            operation="cherry_pick",
            identifier=source_commit,
        )
        self.source_commit = source_commit
        self.path = path
        self.target_branch = target_branch
        # commits built before the conflict, never referenced by the branch
        self.applied = list(applied or [])

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update({
            "commit": self.source_commit,
            "path": self.path,
            "targetBranch": self.target_branch,
            "rolledBack": self.applied,
        })
        return data


class MergeConflict(GitFlowError):
    status_code = 409


class NotFound(GitFlowError):
    status_code = 404


class UpstreamUnavailable(GitFlowError):
    status_code = 502


class AuditUnavailable(GitFlowError):
    """The audit trail could not be read."""

    status_code = 503


class AuditError(Exception):
    """Raised by audit sinks; never propagated past the audit log."""
