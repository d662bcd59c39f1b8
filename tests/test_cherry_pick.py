import pytest

from gitflow_app.cherry_pick import CHERRY_PICK_PREFIX, REVIEW_BRANCH_PREFIX
from gitflow_app.errors import ConflictOnApply, InvalidChangeSet, NotFound, RefConflict, UpstreamUnavailable
from gitflow_app.objects import FileChange


@pytest.fixture
def dev_commits(store, stages):
    store.commit_files("uat", {"uat-only.txt": b"uat\n"}, "UAT hotfix")
    a = store.commit_files("dev", {"a.txt": b"A\n"}, "Add a")
    b = store.commit_files("dev", {"src/app.py": b"print('v2')\n"}, "Bump app")
    c = store.commit_files("dev", {"README.md": None}, "Drop readme")
    return a, b, c


def test_picks_are_chained_in_order(store, engine, dev_commits):
    uat_before = store.refs["uat"]

    result = engine.cherry_pick(list(dev_commits), "uat")

    new_ids = result.applied_commit_ids
    assert len(new_ids) == 3
    assert store.refs["uat"] == new_ids[-1] == result.tip
    assert store.commits[new_ids[0]].parents == (uat_before,)
    assert store.commits[new_ids[1]].parents == (new_ids[0],)
    assert store.commits[new_ids[2]].parents == (new_ids[1],)
    for source, new in zip(dev_commits, new_ids):
        assert new != source
        assert store.commits[new].parents != store.commits[source].parents
        assert store.commits[new].message == CHERRY_PICK_PREFIX + store.commits[source].message


def test_picked_content_lands_on_target(store, engine, dev_commits):
    engine.cherry_pick(list(dev_commits), "uat")

    tip = store.refs["uat"]
    assert store.content_at(tip, "a.txt") == b"A\n"
    assert store.content_at(tip, "src/app.py") == b"print('v2')\n"
    assert store.content_at(tip, "README.md") is None
    assert store.content_at(tip, "uat-only.txt") == b"uat\n"


def test_already_applied_pick_is_an_empty_commit(store, engine, dev_commits):
    a = dev_commits[0]
    engine.cherry_pick([a], "uat")
    parent = store.refs["uat"]

    result = engine.cherry_pick([a], "uat")

    [pick] = result.applied
    assert pick.empty is True
    assert pick.files == ()
    assert store.commits[pick.commit_id].parents == (parent,)
    assert store.commits[pick.commit_id].tree_id == store.commits[parent].tree_id


def test_conflict_aborts_whole_request(store, engine, stages):
    a = store.commit_files("dev", {"a.txt": b"A\n"}, "Add a")
    b = store.commit_files("dev", {"src/app.py": b"print('dev')\n"}, "Change app on dev")
    c = store.commit_files("dev", {"c.txt": b"C\n"}, "Add c")
    store.commit_files("uat", {"src/app.py": b"print('uat')\n"}, "Change app on uat")
    uat_before = store.refs["uat"]

    with pytest.raises(ConflictOnApply) as excinfo:
        engine.cherry_pick([a, b, c], "uat")

    assert excinfo.value.source_commit == b
    assert excinfo.value.path == "src/app.py"
    assert len(excinfo.value.applied) == 1
    assert store.refs["uat"] == uat_before
    assert excinfo.value.to_dict()["rolledBack"] == excinfo.value.applied


def test_conflict_is_not_audited(store, engine, audit_sink, stages):
    b = store.commit_files("dev", {"src/app.py": b"print('dev')\n"}, "Change app on dev")
    store.commit_files("uat", {"src/app.py": b"print('uat')\n"}, "Change app on uat")

    with pytest.raises(ConflictOnApply):
        engine.cherry_pick([b], "uat")

    assert audit_sink.records == []


def test_each_pick_is_audited(store, engine, audit_sink, dev_commits):
    result = engine.cherry_pick(list(dev_commits[:2]), "uat")

    assert [r.commit_id for r in audit_sink.records] == result.applied_commit_ids
    assert all(r.branch == "uat" for r in audit_sink.records)
    assert audit_sink.records[0].files == ("a.txt",)
    assert audit_sink.records[0].message == "[Cherry-pick] Add a"


def test_removal_of_modified_file_conflicts(store, engine, stages):
    drop = store.commit_files("dev", {"README.md": None}, "Drop readme")
    store.commit_files("uat", {"README.md": b"edited on uat\n"}, "Edit readme")

    with pytest.raises(ConflictOnApply) as excinfo:
        engine.cherry_pick([drop], "uat")
    assert excinfo.value.path == "README.md"


def test_removal_already_applied_is_skipped(store, engine, stages):
    drop = store.commit_files("dev", {"README.md": None}, "Drop readme")
    store.commit_files("uat", {"README.md": None}, "Drop readme too")

    result = engine.cherry_pick([drop], "uat")
    assert result.applied[0].empty is True


def test_rename_replays_as_delete_and_add(store, engine, stages, monkeypatch):
    moved = store.commit_files("dev", {"README.md": None, "docs/README.md": b"root\n"}, "Move readme")
    blob_id = store.tree_of(moved)["docs/README.md"].blob_id
    monkeypatch.setattr(store, "get_commit_file_changes", lambda commit_id: [
        FileChange("docs/README.md", "renamed", blob_id, previous_path="README.md"),
    ])

    engine.cherry_pick([moved], "uat")

    tip = store.refs["uat"]
    assert store.content_at(tip, "README.md") is None
    assert store.content_at(tip, "docs/README.md") == b"root\n"


def _hide_from_tree(store, monkeypatch, commit_id, path):
    tree_id = store.commits[commit_id].tree_id
    get_tree = store.get_tree

    def partial(requested):
        tree = get_tree(requested)
        if requested == tree_id:
            tree.pop(path, None)
        return tree

    monkeypatch.setattr(store, "get_tree", partial)


def test_content_comes_from_change_set_when_tree_lacks_path(store, engine, stages, monkeypatch):
    bump = store.commit_files("dev", {"src/app.py": b"print('v2')\n"}, "Bump app")
    _hide_from_tree(store, monkeypatch, bump, "src/app.py")

    result = engine.cherry_pick([bump], "uat")

    [pick] = result.applied
    assert pick.empty is False
    assert pick.files == ("src/app.py",)
    assert store.content_at(store.refs["uat"], "src/app.py") == b"print('v2')\n"


def test_path_without_content_anywhere_fails_the_pick(store, engine, stages, monkeypatch):
    bump = store.commit_files("dev", {"src/app.py": b"print('v2')\n"}, "Bump app")
    _hide_from_tree(store, monkeypatch, bump, "src/app.py")
    monkeypatch.setattr(store, "get_commit_file_changes", lambda commit_id: [
        FileChange("src/app.py", "modified"),
    ])
    uat_before = store.refs["uat"]

    with pytest.raises(UpstreamUnavailable) as excinfo:
        engine.cherry_pick([bump], "uat")

    assert excinfo.value.identifier == f"{bump}:src/app.py"
    assert store.refs["uat"] == uat_before


def test_merge_commit_cannot_be_picked(store, engine, pipeline, dev_commits):
    merge = pipeline.promote("dev").commit_id

    with pytest.raises(InvalidChangeSet, match="merge commit"):
        engine.cherry_pick([merge], "main")


def test_unknown_commit_is_not_found(store, engine, stages):
    with pytest.raises(NotFound):
        engine.cherry_pick(["f" * 40], "uat")
    assert store.refs["uat"] == stages


@pytest.mark.parametrize("commits, target", [([], "uat"), (["abc"], ""), (["abc", ""], "uat"), (None, "uat")])
def test_invalid_requests(engine, stages, commits, target):
    with pytest.raises(InvalidChangeSet):
        engine.cherry_pick(commits, target)


def test_target_moving_during_pick_is_a_ref_conflict(store, engine, dev_commits, monkeypatch):
    original = store.get_commit_file_changes

    def racing(commit_id):
        store.commit_files("uat", {"late.txt": b"late"}, "late")
        monkeypatch.setattr(store, "get_commit_file_changes", original)
        return original(commit_id)

    monkeypatch.setattr(store, "get_commit_file_changes", racing)

    with pytest.raises(RefConflict):
        engine.cherry_pick([dev_commits[0]], "uat")
    assert store.content_at(store.refs["uat"], "late.txt") == b"late"


def test_review_pick_uses_ephemeral_branch(store, engine, audit_sink, dev_commits):
    uat_before = store.refs["uat"]

    result = engine.cherry_pick_for_review(list(dev_commits[:2]), "uat")

    assert result.branch.startswith(REVIEW_BRANCH_PREFIX + "uat/")
    assert store.refs["uat"] == uat_before
    assert store.refs[result.branch] == result.applied[-1].commit_id
    review, title, body = store.reviews[result.review.number]
    assert review.head == result.branch
    assert review.base == "uat"
    assert title == "Cherry-pick 2 commit(s) into uat"
    assert dev_commits[0] in body
    assert audit_sink.records == []


def test_approve_and_integrate_merges_and_cleans_up(store, engine, audit_sink, dev_commits):
    uat_before = store.refs["uat"]
    opened = engine.cherry_pick_for_review([dev_commits[0]], "uat")

    result = engine.approve_and_integrate(opened.review.number)

    assert store.approvals == [opened.review.number]
    assert store.refs["uat"] == result.merge_commit_id
    assert store.commits[result.merge_commit_id].parents == (uat_before, opened.applied[-1].commit_id)
    assert opened.branch not in store.refs
    [entry] = audit_sink.records
    assert entry.commit_id == result.merge_commit_id
    assert entry.branch == "uat"


def test_failed_review_pick_discards_branch(store, engine, stages):
    b = store.commit_files("dev", {"src/app.py": b"print('dev')\n"}, "Change app on dev")
    store.commit_files("uat", {"src/app.py": b"print('uat')\n"}, "Change app on uat")

    with pytest.raises(ConflictOnApply):
        engine.cherry_pick_for_review([b], "uat")

    assert not any(name.startswith(REVIEW_BRANCH_PREFIX) for name in store.refs)
    assert store.reviews == {}
