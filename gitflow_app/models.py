from django.db import models


class AuditRecord(models.Model):
    """One successful graph mutation. Rows are only ever inserted."""
    commit_id = models.CharField(max_length=40, db_index=True)
    branch = models.CharField(max_length=255, db_index=True)
    message = models.TextField(blank=True)
    files = models.JSONField(default=list)
    created_at = models.DateTimeField()

    class Meta:
        ordering = ["-created_at", "-id"]
