from django.urls import path

from . import views

app_name = 'gitflow_app'

urlpatterns = [
    path("", views.status, name="status"),
    path("upload-file", views.upload_file, name="upload_file"),
    path("commit", views.commit_files, name="commit"),
    path("commit/<path:branch>", views.commit_files, name="commit_branch"),
    path("cherrypick", views.cherry_pick, name="cherry_pick"),
    path("cherrypick/review", views.cherry_pick_review, name="cherry_pick_review"),
    path("reviews/<int:review_id>/approve", views.approve_review, name="approve_review"),
    path("promote/<str:stage>", views.promote, name="promote"),
    path("promote/<str:stage>/selective", views.promote_selective, name="promote_selective"),
    path("branches/<path:branch>", views.branch_tip, name="branch_tip"),
    path("audit", views.audit_log, name="audit_log"),
]
