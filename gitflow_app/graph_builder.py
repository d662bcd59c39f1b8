"""
Turns one change set into one commit on a branch.

The sequence is strictly ordered: tip -> base commit -> blobs -> partial tree
-> commit -> compare-and-set of the ref. Paths not named in the change set
are inherited from the base tree by the store.
"""
import dataclasses
import logging

from .errors import InvalidChangeSet, StaleRef
from .helpers import normalize_path
from .objects import Change, Commit, CommitResult, TreeEntry

logger = logging.getLogger(__name__)


def validate_changes(changes, operation: str = "commit") -> list[Change]:
    """Normalise paths and reject contradictory or malformed entries."""
    validated = []
    seen = {}
    for change in changes:
        path = normalize_path(change.path)
        kinds = sum([change.content is not None, change.blob_id is not None, change.delete])
        if kinds != 1:
            raise InvalidChangeSet(
                f"Change for '{path}' must carry exactly one of content, blob or deletion",
                operation=operation, identifier=path,
            )
        if path in seen:
            what = "both deleted and written" if seen[path].delete != change.delete else "given twice"
            raise InvalidChangeSet(f"Path '{path}' is {what}", operation=operation, identifier=path)
        change = dataclasses.replace(change, path=path)
        seen[path] = change
        validated.append(change)
    return validated


class CommitGraphBuilder:
    def __init__(self, store, audit_log=None):
        self.store = store
        self.audit_log = audit_log

    def commit_changes(self, branch: str, changes, message: str,
                       expected_base: str | None = None) -> CommitResult:
        if not branch:
            raise InvalidChangeSet("branch is required", operation="commit")
        changes = validate_changes(changes)
        if changes and not (message or "").strip():
            raise InvalidChangeSet("commit message is required", operation="commit", identifier=branch)

        tip = self.store.get_branch_tip(branch)
        if expected_base and expected_base != tip:
            raise StaleRef(branch, expected=expected_base, actual=tip)
        parent = self.store.get_commit(tip)

        base_tree = None
        if any(c.delete for c in changes):
            base_tree = self.store.get_tree(parent.tree_id)
            changes = self._drop_absent_deletions(changes, base_tree, parent)

        if not changes:
            logger.info("Empty change set for %s; tip stays at %s", branch, tip[:7])
            return CommitResult(
                commit_id=tip,
                branch=branch,
                parent_id=parent.parents[0] if parent.parents else "",
                tree_id=parent.tree_id,
                created=False,
            )

        commit = self.build_commit(parent, changes, message, base_tree=base_tree)
        self.store.update_ref(branch, tip, commit.id)
        files = tuple(c.path for c in changes)
        logger.info("Committed %s to %s (%d file(s))", commit.id[:7], branch, len(files))

        if self.audit_log is not None:
            self.audit_log.record(commit.id, files, message, branch)
        return CommitResult(
            commit_id=commit.id,
            branch=branch,
            parent_id=tip,
            tree_id=commit.tree_id,
            files=files,
        )

    @staticmethod
    def _drop_absent_deletions(changes, base_tree, parent) -> list[Change]:
        kept = []
        for change in changes:
            if change.delete and change.path not in base_tree:
                logger.warning("Skipping deletion of '%s': not present in %s", change.path, parent.id[:7])
                continue
            kept.append(change)
        return kept

    def build_commit(self, parent: Commit, changes, message: str,
                     base_tree: dict[str, TreeEntry] | None = None) -> Commit:
        """
        Create blobs, tree and commit on top of ``parent`` without moving any ref.

        ``base_tree`` is the parent's tree when the caller already holds it;
        it is only fetched when a deletion has to be checked against it. An
        empty change set produces a commit that reuses the parent's tree.
        """
        entries = []
        for change in changes:
            if change.delete:
                if base_tree is None:
                    base_tree = self.store.get_tree(parent.tree_id)
                existing = base_tree.get(change.path)
                if existing is None:
                    logger.warning("Skipping deletion of '%s': not present in %s", change.path, parent.id[:7])
                    continue
                entries.append(TreeEntry(path=change.path, blob_id=None, mode=existing.mode))
            elif change.content is not None:
                blob_id = self.store.create_blob(change.content)
                entries.append(TreeEntry(path=change.path, blob_id=blob_id, mode=change.mode))
            else:
                entries.append(TreeEntry(path=change.path, blob_id=change.blob_id, mode=change.mode))

        tree_id = self.store.create_tree(parent.tree_id, entries) if entries else parent.tree_id
        commit_id = self.store.create_commit(tree_id, [parent.id], message)
        return Commit(id=commit_id, tree_id=tree_id, message=message, parents=(parent.id,))
