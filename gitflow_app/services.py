"""Per-request wiring of the graph collaborators from Django settings."""
from dataclasses import dataclass

from django.conf import settings

from .audit import AuditLog, DatabaseAuditSink, JsonFileAuditSink
from .cherry_pick import CherryPickEngine
from .github_client import GitHubObjectStore
from .graph_builder import CommitGraphBuilder
from .promotion import PromotionPipeline


@dataclass
class Services:
    store: object
    audit_log: AuditLog
    builder: CommitGraphBuilder
    cherry_picker: CherryPickEngine
    pipeline: PromotionPipeline


def get_object_store():
    return GitHubObjectStore.from_settings()


def get_audit_log() -> AuditLog:
    if settings.AUDIT_SINK == "json":
        return AuditLog(JsonFileAuditSink(settings.AUDIT_LOG_PATH))
    return AuditLog(DatabaseAuditSink())


def build_services(store=None, audit_log=None) -> Services:
    store = store if store is not None else get_object_store()
    audit_log = audit_log if audit_log is not None else get_audit_log()
    builder = CommitGraphBuilder(store, audit_log)
    cherry_picker = CherryPickEngine(store, builder, audit_log)
    pipeline = PromotionPipeline(store, cherry_picker, audit_log, settings.PROMOTION_STAGES)
    return Services(
        store=store,
        audit_log=audit_log,
        builder=builder,
        cherry_picker=cherry_picker,
        pipeline=pipeline,
    )
