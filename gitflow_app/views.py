import json
import logging
from functools import wraps

from django.http import HttpRequest, JsonResponse
from django.views.decorators.csrf import csrf_exempt

from . import services
from .errors import GitFlowError, InvalidChangeSet
from .objects import Change
from .uploads import save_upload, upload_changes

logger = logging.getLogger(__name__)


def api_view(*methods):
    """JSON endpoint: method check plus translation of GitFlowError to its status."""
    def decorator(func):
        @csrf_exempt
        @wraps(func)
        def wrapper(request, *args, **kwargs):
            if request.method not in methods:
                return JsonResponse(
                    {"error": "MethodNotAllowed", "message": f"{request.method} not allowed"},
                    status=405,
                )
            try:
                return func(request, *args, **kwargs)
            except GitFlowError as exc:
                logger.warning("%s failed: %s", func.__name__, exc)
                return JsonResponse(exc.to_dict(), status=exc.status_code)
        return wrapper
    return decorator


def _json_body(request: HttpRequest) -> dict:
    if not request.body:
        return {}
    try:
        data = json.loads(request.body)
    except (ValueError, UnicodeDecodeError) as exc:
        raise InvalidChangeSet(f"Request body is not valid JSON: {exc}", operation=request.path) from exc
    if not isinstance(data, dict):
        raise InvalidChangeSet("Request body must be a JSON object", operation=request.path)
    return data


def _list_field(data: dict, name: str, operation: str) -> list:
    value = data.get(name, [])
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise InvalidChangeSet(f"'{name}' must be a list of strings", operation=operation, identifier=name)
    return value


@api_view("GET")
def status(request: HttpRequest) -> JsonResponse:
    return JsonResponse({"status": "online"})


@api_view("POST")
def upload_file(request: HttpRequest) -> JsonResponse:
    uploaded = request.FILES.get("file")
    if uploaded is None:
        raise InvalidChangeSet("No file uploaded", operation="upload", identifier="file")
    name = save_upload(uploaded)
    return JsonResponse({"message": "File uploaded successfully", "fileName": name})


@api_view("POST")
def commit_files(request: HttpRequest, branch: str | None = None) -> JsonResponse:
    data = _json_body(request)
    branch = branch or data.get("branch") or "main"
    files = _list_field(data, "files", "commit")
    deletions = _list_field(data, "deletions", "commit")

    changes = upload_changes(files) + [Change.deletion(path) for path in deletions]
    result = services.build_services().builder.commit_changes(
        branch,
        changes,
        data.get("message", "Commit from API"),
        expected_base=data.get("expectedBase"),
    )
    body = result.to_dict()
    body["message"] = f"Files committed to {branch}" if result.created else "Nothing to commit"
    return JsonResponse(body)


@api_view("POST")
def cherry_pick(request: HttpRequest) -> JsonResponse:
    data = _json_body(request)
    result = services.build_services().cherry_picker.cherry_pick(
        _list_field(data, "commits", "cherry_pick"), data.get("targetBranch"),
    )
    body = result.to_dict()
    body["message"] = "Commits cherry-picked"
    return JsonResponse(body)


@api_view("POST")
def cherry_pick_review(request: HttpRequest) -> JsonResponse:
    data = _json_body(request)
    result = services.build_services().cherry_picker.cherry_pick_for_review(
        _list_field(data, "commits", "cherry_pick_review"),
        data.get("targetBranch"),
        title=data.get("title"),
        body=data.get("body"),
    )
    return JsonResponse(result.to_dict(), status=201)


@api_view("POST")
def approve_review(request: HttpRequest, review_id: int) -> JsonResponse:
    data = _json_body(request)
    delete_branch = data.get("deleteBranch", True)
    if not isinstance(delete_branch, bool):
        raise InvalidChangeSet("'deleteBranch' must be a boolean", operation="approve_review", identifier="deleteBranch")
    result = services.build_services().cherry_picker.approve_and_integrate(
        review_id,
        method=data.get("method", "merge"),
        delete_branch=delete_branch,
    )
    return JsonResponse(result.to_dict())


@api_view("POST")
def promote(request: HttpRequest, stage: str) -> JsonResponse:
    result = services.build_services().pipeline.promote(stage)
    body = result.to_dict()
    if result.merged:
        body["message"] = f"{result.source} merged into {result.destination}"
    else:
        body["message"] = f"{result.destination} is already up to date with {result.source}"
    return JsonResponse(body)


@api_view("POST")
def promote_selective(request: HttpRequest, stage: str) -> JsonResponse:
    data = _json_body(request)
    result = services.build_services().pipeline.promote_selected(
        _list_field(data, "commits", "promote_selected"), source_stage=stage,
    )
    # partial success is still a 200; the caller reads "failed"
    return JsonResponse(result.to_dict())


@api_view("GET")
def branch_tip(request: HttpRequest, branch: str) -> JsonResponse:
    commit_id = services.build_services().store.get_branch_tip(branch)
    return JsonResponse({"branch": branch, "commit": commit_id})


@api_view("GET")
def audit_log(request: HttpRequest) -> JsonResponse:
    limit = request.GET.get("limit")
    try:
        limit = int(limit) if limit else None
    except ValueError:
        raise InvalidChangeSet(f"limit must be an integer, got '{limit}'", operation="audit", identifier="limit") from None
    records = services.get_audit_log().entries(branch=request.GET.get("branch"), limit=limit)
    return JsonResponse({"records": [r.to_dict() for r in records]})
