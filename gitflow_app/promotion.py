"""
Fixed promotion chain dev -> uat -> main.

Full promotion merges a stage's branch into the next one. Selective
promotion cherry-picks chosen commits one at a time, keeping every pick that
succeeded before the first failure.
"""
import logging

from .errors import GitFlowError, InvalidChangeSet
from .objects import PromotionResult, SelectivePromotionResult

logger = logging.getLogger(__name__)

STAGES = ("dev", "uat", "main")


class PromotionPipeline:
    def __init__(self, store, cherry_picker, audit_log=None, stage_branches: dict | None = None):
        self.store = store
        self.cherry_picker = cherry_picker
        self.audit_log = audit_log
        self.stage_branches = {stage: stage for stage in STAGES}
        self.stage_branches.update(stage_branches or {})

    def next_stage(self, stage: str) -> str:
        if stage not in STAGES:
            raise InvalidChangeSet(f"Unknown stage '{stage}'; expected one of {', '.join(STAGES)}",
                                   operation="promote", identifier=stage)
        index = STAGES.index(stage)
        if index == len(STAGES) - 1:
            raise InvalidChangeSet(f"'{stage}' is the last stage and cannot be promoted",
                                   operation="promote", identifier=stage)
        return STAGES[index + 1]

    def branch_for(self, stage: str) -> str:
        return self.stage_branches[stage]

    def promote(self, source_stage: str) -> PromotionResult:
        destination = self.next_stage(source_stage)
        head, base = self.branch_for(source_stage), self.branch_for(destination)
        message = f"Merging {head} into {base}"

        commit_id = self.store.merge_branches(base=base, head=head, message=message)
        if commit_id is None:
            logger.info("%s already contains %s; nothing to promote", base, head)
            return PromotionResult(source=source_stage, destination=destination,
                                   commit_id=self.store.get_branch_tip(base), merged=False)

        logger.info("Promoted %s into %s as %s", head, base, commit_id[:7])
        if self.audit_log is not None:
            self.audit_log.record(commit_id, (), message, base)
        return PromotionResult(source=source_stage, destination=destination, commit_id=commit_id, merged=True)

    def promote_selected(self, commits, source_stage: str = "dev") -> SelectivePromotionResult:
        destination = self.next_stage(source_stage)
        if not commits:
            raise InvalidChangeSet("commits must be a non-empty list of commit ids",
                                   operation="promote_selected", identifier=source_stage)
        target = self.branch_for(destination)

        applied = []
        failed = None
        for commit_id in commits:
            try:
                result = self.cherry_picker.cherry_pick([commit_id], target)
            except GitFlowError as exc:
                logger.warning("Selective promotion of %s onto %s stopped: %s", commit_id, target, exc)
                failed = {"commit": commit_id, **exc.to_dict()}
                break
            applied.extend(result.applied)

        return SelectivePromotionResult(source=source_stage, destination=destination,
                                        applied=tuple(applied), failed=failed)
