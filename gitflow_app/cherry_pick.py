"""
Replays commits onto another branch.

Each source commit's file-level change set is checked against a rolling base
(the target tip, then each commit this engine just built) and rebuilt there
with ``CommitGraphBuilder.build_commit``. The target ref is moved once, after
the last pick, so a conflict anywhere leaves the branch where it was.
"""
import logging
import uuid

from .errors import ConflictOnApply, GitFlowError, InvalidChangeSet, UpstreamUnavailable
from .objects import (
    AppliedPick,
    Change,
    CherryPickResult,
    FileMode,
    IntegrationResult,
    ReviewResult,
    TreeEntry,
)

logger = logging.getLogger(__name__)

CHERRY_PICK_PREFIX = "[Cherry-pick] "
REVIEW_BRANCH_PREFIX = "cherry-pick/"


def apply_to_tree(tree: dict[str, TreeEntry], changes: list[Change]) -> dict[str, TreeEntry]:
    updated = dict(tree)
    for change in changes:
        if change.delete:
            updated.pop(change.path, None)
        else:
            updated[change.path] = TreeEntry(path=change.path, blob_id=change.blob_id, mode=change.mode)
    return updated


def _validate_request(source_commits, target_branch: str, operation: str) -> list[str]:
    if not target_branch or not isinstance(target_branch, str):
        raise InvalidChangeSet("targetBranch is required", operation=operation)
    commits = [c.strip() for c in (source_commits or []) if isinstance(c, str)]
    if not commits or not all(commits) or len(commits) != len(source_commits):
        raise InvalidChangeSet("commits must be a non-empty list of commit ids",
                               operation=operation, identifier=target_branch)
    return commits


class CherryPickEngine:
    def __init__(self, store, builder, audit_log=None):
        self.store = store
        self.builder = builder
        self.audit_log = audit_log

    def cherry_pick(self, source_commits, target_branch: str, audit: bool = True) -> CherryPickResult:
        commits = _validate_request(source_commits, target_branch, "cherry_pick")

        base_id = self.store.get_branch_tip(target_branch)
        rolling = self.store.get_commit(base_id)
        rolling_tree = self.store.get_tree(rolling.tree_id)
        applied = []

        for source_id in commits:
            source = self.store.get_commit(source_id)
            changes = self.replay_changes(source, rolling_tree, target_branch, applied)
            message = CHERRY_PICK_PREFIX + source.message
            commit = self.builder.build_commit(rolling, changes, message, base_tree=rolling_tree)
            if not changes:
                logger.info("Cherry-pick of %s onto %s is empty; recorded as %s",
                            source.id[:7], target_branch, commit.id[:7])
            rolling_tree = apply_to_tree(rolling_tree, changes)
            rolling = commit
            applied.append(AppliedPick(
                source_id=source.id,
                commit_id=commit.id,
                message=message,
                files=tuple(c.path for c in changes),
                empty=not changes,
            ))

        self.store.update_ref(target_branch, base_id, rolling.id)
        logger.info("Cherry-picked %d commit(s) onto %s", len(applied), target_branch)

        if audit and self.audit_log is not None:
            for pick in applied:
                self.audit_log.record(pick.commit_id, pick.files, pick.message, target_branch)
        return CherryPickResult(target_branch=target_branch, base_id=base_id, applied=tuple(applied))

    def replay_changes(self, source, rolling_tree: dict[str, TreeEntry], target_branch: str,
                       applied=()) -> list[Change]:
        """
        The changes ``source`` introduced over its parent, restated against
        ``rolling_tree``. Paths already matching the source are dropped; a path
        whose current entry differs from the source parent's raises
        ``ConflictOnApply``.
        """
        if len(source.parents) > 1:
            raise InvalidChangeSet(f"Commit {source.id} is a merge commit and cannot be cherry-picked",
                                   operation="cherry_pick", identifier=source.id)
        if source.parents:
            parent_tree = self.store.get_tree(self.store.get_commit(source.parents[0]).tree_id)
        else:
            parent_tree = {}
        source_tree = self.store.get_tree(source.tree_id)

        def conflict(path):
            return ConflictOnApply(source.id, path, target_branch,
                                   applied=[p.commit_id for p in applied])

        changes = []
        for file_change in self.store.get_commit_file_changes(source.id):
            removals, additions = [], [file_change.path]
            if file_change.status == "removed":
                removals, additions = [file_change.path], []
            elif file_change.status == "renamed" and file_change.previous_path:
                removals = [file_change.previous_path]

            for path in removals:
                current = rolling_tree.get(path)
                if current is None:
                    continue
                if not current.same_content(parent_tree.get(path)):
                    raise conflict(path)
                changes.append(Change.deletion(path))

            for path in additions:
                current = rolling_tree.get(path)
                new = self._source_entry(source, file_change, path, source_tree, current)
                if new.same_content(current):
                    continue
                expected = parent_tree.get(path)
                if current is None and expected is None or current is not None and current.same_content(expected):
                    changes.append(Change.from_entry(new))
                else:
                    raise conflict(path)
        return changes

    @staticmethod
    def _source_entry(source, file_change, path, source_tree, current) -> TreeEntry:
        """The entry ``source`` wrote at ``path``: blob from the change set, mode from its tree."""
        in_tree = source_tree.get(path)
        blob_id = file_change.blob_id if path == file_change.path and file_change.blob_id else None
        if in_tree is not None:
            return TreeEntry(path=path, blob_id=blob_id or in_tree.blob_id, mode=in_tree.mode)
        if blob_id is None:
            raise UpstreamUnavailable(
                f"Commit {source.id} changes '{path}' but neither its change set nor its tree has the content",
                operation="cherry_pick", identifier=f"{source.id}:{path}",
            )
        mode = current.mode if current is not None else FileMode.FILE
        return TreeEntry(path=path, blob_id=blob_id, mode=mode)

    def cherry_pick_for_review(self, source_commits, target_branch: str,
                               title: str | None = None, body: str | None = None) -> ReviewResult:
        """Same picks, written to a throwaway branch and offered as a review request."""
        _validate_request(source_commits, target_branch, "cherry_pick_review")
        tip = self.store.get_branch_tip(target_branch)
        branch = f"{REVIEW_BRANCH_PREFIX}{target_branch}/{uuid.uuid4().hex[:8]}"
        self.store.create_ref(branch, tip)
        logger.info("Created review branch %s at %s", branch, tip[:7])

        try:
            result = self.cherry_pick(source_commits, branch, audit=False)
            title = title or f"Cherry-pick {len(result.applied)} commit(s) into {target_branch}"
            if body is None:
                body = "\n".join(f"- {p.source_id} -> {p.commit_id}" for p in result.applied)
            review = self.store.create_review_request(branch, target_branch, title, body)
        except GitFlowError:
            self._discard_branch(branch)
            raise
        return ReviewResult(review=review, branch=branch, applied=result.applied)

    def approve_and_integrate(self, review_id: int, method: str = "merge",
                              delete_branch: bool = True) -> IntegrationResult:
        review = self.store.get_review_request(review_id)
        merge_commit_id = self.store.approve_and_merge(review_id, method)
        logger.info("Merged review #%s (%s -> %s) as %s", review_id, review.head, review.base, merge_commit_id[:7])

        if self.audit_log is not None:
            self.audit_log.record(merge_commit_id, (), f"Merge review #{review_id} from {review.head}", review.base)
        if delete_branch and review.head.startswith(REVIEW_BRANCH_PREFIX):
            self._discard_branch(review.head)
        return IntegrationResult(review_id=review_id, merge_commit_id=merge_commit_id, branch=review.base)

    def _discard_branch(self, branch: str) -> None:
        try:
            self.store.delete_ref(branch)
        except GitFlowError:
            logger.warning("Could not delete review branch %s", branch, exc_info=True)
