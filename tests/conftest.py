import hashlib

import pytest

from gitflow_app.audit import AuditLog, MemoryAuditSink
from gitflow_app.cherry_pick import CherryPickEngine
from gitflow_app.errors import InvalidChangeSet, MergeConflict, NotFound, RefConflict
from gitflow_app.graph_builder import CommitGraphBuilder
from gitflow_app.objects import Commit, FileChange, FileMode, ReviewRequest, TreeEntry
from gitflow_app.promotion import PromotionPipeline


def hash_object(data: bytes, obj_type: str) -> str:
    header = f"{obj_type} {len(data)}\0".encode()
    return hashlib.sha1(header + data).hexdigest()


class FakeObjectStore:
    """In-memory, content-addressed stand-in for the remote graph API."""

    def __init__(self):
        self.blobs = {}
        self.trees = {}
        self.commits = {}
        self.refs = {}
        self.reviews = {}
        self.approvals = []
        self.conflicting_merges = set()
        self._clock = 0

    # helpers used by tests

    def _store_tree(self, entries: dict) -> str:
        body = "\n".join(f"{e.mode.value} {e.blob_id} {path}" for path, e in sorted(entries.items()))
        sha = hash_object(body.encode(), "tree")
        self.trees[sha] = dict(entries)
        return sha

    def seed(self, branch, files, message="initial"):
        entries = {path: TreeEntry(path, self.create_blob(content)) for path, content in files.items()}
        commit_id = self.create_commit(self._store_tree(entries), [], message)
        self.refs[branch] = commit_id
        return commit_id

    def commit_files(self, branch, files, message):
        """Commit straight onto a branch; a None value deletes the path."""
        tip = self.refs[branch]
        entries = dict(self.trees[self.commits[tip].tree_id])
        for path, content in files.items():
            if content is None:
                entries.pop(path)
            else:
                entries[path] = TreeEntry(path, self.create_blob(content))
        commit_id = self.create_commit(self._store_tree(entries), [tip], message)
        self.refs[branch] = commit_id
        return commit_id

    def tree_of(self, commit_id):
        return self.trees[self.commits[commit_id].tree_id]

    def content_at(self, commit_id, path):
        entry = self.tree_of(commit_id).get(path)
        return None if entry is None else self.blobs[entry.blob_id]

    def is_ancestor(self, ancestor, commit_id):
        pending = [commit_id]
        seen = set()
        while pending:
            current = pending.pop()
            if current == ancestor:
                return True
            if current in seen:
                continue
            seen.add(current)
            pending.extend(self.commits[current].parents)
        return False

    # client interface

    def get_branch_tip(self, branch):
        if branch not in self.refs:
            raise NotFound(f"get_branch_tip: '{branch}' not found", operation="get_branch_tip", identifier=branch)
        return self.refs[branch]

    def get_commit(self, commit_id):
        if commit_id not in self.commits:
            raise NotFound(f"get_commit: '{commit_id}' not found", operation="get_commit", identifier=commit_id)
        return self.commits[commit_id]

    def get_commit_file_changes(self, commit_id):
        commit = self.get_commit(commit_id)
        new = self.trees[commit.tree_id]
        old = self.tree_of(commit.parents[0]) if commit.parents else {}
        changes = []
        for path in sorted(set(old) | set(new)):
            if path not in new:
                changes.append(FileChange(path, "removed"))
            elif path not in old:
                changes.append(FileChange(path, "added", new[path].blob_id))
            elif not new[path].same_content(old[path]):
                changes.append(FileChange(path, "modified", new[path].blob_id))
        return changes

    def get_tree(self, tree_id):
        if tree_id not in self.trees:
            raise NotFound(f"get_tree: '{tree_id}' not found", operation="get_tree", identifier=tree_id)
        return dict(self.trees[tree_id])

    def create_blob(self, content):
        sha = hash_object(content, "blob")
        self.blobs[sha] = content
        return sha

    def create_tree(self, base_tree_id, entries):
        tree = self.get_tree(base_tree_id)
        for entry in entries:
            if entry.blob_id is None:
                if entry.path not in tree:
                    raise InvalidChangeSet(f"'{entry.path}' not in tree", operation="create_tree")
                del tree[entry.path]
            else:
                assert entry.mode is FileMode.SUBMODULE or entry.blob_id in self.blobs
                tree[entry.path] = entry
        return self._store_tree(tree)

    def create_commit(self, tree_id, parents, message):
        assert tree_id in self.trees
        assert all(p in self.commits for p in parents)
        self._clock += 1
        body = f"tree {tree_id}\n" + "".join(f"parent {p}\n" for p in parents) + f"time {self._clock}\n\n{message}"
        sha = hash_object(body.encode(), "commit")
        self.commits[sha] = Commit(id=sha, tree_id=tree_id, message=message, parents=tuple(parents))
        return sha

    def update_ref(self, branch, expected_old, new):
        current = self.get_branch_tip(branch)
        if current != expected_old:
            raise RefConflict(f"Branch '{branch}' moved", identifier=branch, expected=expected_old, actual=current)
        assert new in self.commits
        self.refs[branch] = new

    def create_ref(self, branch, from_commit_id):
        if branch in self.refs:
            raise RefConflict(f"Branch '{branch}' already exists", operation="create_ref", identifier=branch)
        self.refs[branch] = from_commit_id

    def delete_ref(self, branch):
        if branch not in self.refs:
            raise NotFound(f"delete_ref: '{branch}' not found", operation="delete_ref", identifier=branch)
        del self.refs[branch]

    def create_review_request(self, from_branch, to_branch, title, body=""):
        number = len(self.reviews) + 1
        review = ReviewRequest(number=number, url=f"https://example.test/pull/{number}",
                               head=from_branch, base=to_branch)
        self.reviews[number] = (review, title, body)
        return review

    def get_review_request(self, number):
        if number not in self.reviews:
            raise NotFound(f"Review #{number} not found", operation="get_review_request", identifier=str(number))
        return self.reviews[number][0]

    def approve_and_merge(self, number, method="merge"):
        review = self.get_review_request(number)
        self.approvals.append(number)
        return self.merge_branches(review.base, review.head, f"Merge pull request #{number}")

    def merge_branches(self, base, head, message):
        base_tip, head_tip = self.get_branch_tip(base), self.get_branch_tip(head)
        if self.is_ancestor(head_tip, base_tip):
            return None
        if (head, base) in self.conflicting_merges:
            raise MergeConflict(f"Merging '{head}' into '{base}' has conflicts",
                                operation="merge_branches", identifier=f"{head}->{base}")
        merged = dict(self.tree_of(base_tip))
        merged.update(self.tree_of(head_tip))
        commit_id = self.create_commit(self._store_tree(merged), [base_tip, head_tip], message)
        self.refs[base] = commit_id
        return commit_id


@pytest.fixture
def store():
    return FakeObjectStore()


@pytest.fixture
def audit_sink():
    return MemoryAuditSink()


@pytest.fixture
def audit_log(audit_sink):
    return AuditLog(audit_sink)


@pytest.fixture
def builder(store, audit_log):
    return CommitGraphBuilder(store, audit_log)


@pytest.fixture
def engine(store, builder, audit_log):
    return CherryPickEngine(store, builder, audit_log)


@pytest.fixture
def pipeline(store, engine, audit_log):
    return PromotionPipeline(store, engine, audit_log)


@pytest.fixture
def stages(store):
    """dev, uat and main all start at the same commit."""
    base = store.seed("dev", {"README.md": b"root\n", "src/app.py": b"print('v1')\n"})
    store.refs["uat"] = base
    store.refs["main"] = base
    return base
