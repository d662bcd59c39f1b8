import argparse
import json
import os
import sys

import requests

REMOTE_URL = os.environ.get("PROMOTER_URL", "http://localhost:8000/api/git")
TIMEOUT = 60


def _report(resp):
    try:
        body = resp.json()
    except ValueError:
        body = {"status": resp.status_code, "text": resp.text}
    print(json.dumps(body, indent=2))
    return 0 if resp.ok else 1


def upload(path):
    with open(path, 'rb') as f:
        resp = requests.post(f"{REMOTE_URL}/upload-file", files={"file": (os.path.basename(path), f)}, timeout=TIMEOUT)
    resp.raise_for_status()
    return resp.json()["fileName"]


def commit(branch, paths, message, expected_base=None, deletions=None):
    names = [upload(p) for p in paths]
    payload = {"branch": branch, "files": names, "deletions": deletions or [], "message": message}
    if expected_base:
        payload["expectedBase"] = expected_base
    return _report(requests.post(f"{REMOTE_URL}/commit", json=payload, timeout=TIMEOUT))


def cherry_pick(commits, target_branch, review=False, title=None):
    payload = {"commits": commits, "targetBranch": target_branch}
    if review:
        if title:
            payload["title"] = title
        return _report(requests.post(f"{REMOTE_URL}/cherrypick/review", json=payload, timeout=TIMEOUT))
    return _report(requests.post(f"{REMOTE_URL}/cherrypick", json=payload, timeout=TIMEOUT))


def approve(review_id, method="merge"):
    payload = {"method": method}
    return _report(requests.post(f"{REMOTE_URL}/reviews/{review_id}/approve", json=payload, timeout=TIMEOUT))


def promote(stage, commits=None):
    if commits:
        url = f"{REMOTE_URL}/promote/{stage}/selective"
        return _report(requests.post(url, json={"commits": commits}, timeout=TIMEOUT))
    return _report(requests.post(f"{REMOTE_URL}/promote/{stage}", timeout=TIMEOUT))


def tip(branch):
    return _report(requests.get(f"{REMOTE_URL}/branches/{branch}", timeout=TIMEOUT))


def audit(branch=None, limit=None):
    params = {k: v for k, v in (("branch", branch), ("limit", limit)) if v}
    return _report(requests.get(f"{REMOTE_URL}/audit", params=params, timeout=TIMEOUT))


def main(argv=None):
    parser = argparse.ArgumentParser(description="py_promote command")
    parser.add_argument('command', choices=['commit', 'cherry-pick', 'review', 'approve', 'promote', 'tip', 'audit'],
                        help='py_promote commands')
    parser.add_argument('-b', '--branch', type=str, help='Branch to commit to, cherry-pick onto or inspect')
    parser.add_argument('-f', '--file', action='append', default=[], help='File to upload and commit (repeatable)')
    parser.add_argument('-d', '--delete', action='append', default=[], help='Repository path to delete (repeatable)')
    parser.add_argument('-m', '--message', type=str, help='Commit message or review title')
    parser.add_argument('-c', '--commit', action='append', default=[], help='Commit id (repeatable, order kept)')
    parser.add_argument('-s', '--stage', type=str, default='dev', help='Stage to promote from')
    parser.add_argument('-r', '--review', type=int, help='Review request number for approve')
    parser.add_argument('--expected-base', type=str, help='Fail if the branch tip is not this commit')
    parser.add_argument('--method', choices=['merge', 'squash', 'rebase'], default='merge')
    parser.add_argument('-n', '--limit', type=int, help='Max audit records')

    args = parser.parse_args(argv)

    if args.command == 'commit':
        if not args.branch or not args.message:
            parser.error('commit requires -b branch and -m message')
        if not args.file and not args.delete:
            parser.error('commit requires at least one -f file or -d path')
        return commit(args.branch, args.file, args.message, args.expected_base, args.delete)
    if args.command in ('cherry-pick', 'review'):
        if not args.branch or not args.commit:
            parser.error(f'{args.command} requires -b target branch and at least one -c commit')
        return cherry_pick(args.commit, args.branch, review=args.command == 'review', title=args.message)
    if args.command == 'approve':
        if args.review is None:
            parser.error('approve requires -r review number')
        return approve(args.review, args.method)
    if args.command == 'promote':
        return promote(args.stage, args.commit)
    if args.command == 'tip':
        if not args.branch:
            parser.error('tip requires -b branch')
        return tip(args.branch)
    return audit(args.branch, args.limit)


if __name__ == '__main__':
    sys.exit(main())
