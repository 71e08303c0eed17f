# salon_api/common/paging.py
from flask import request

DEFAULT_PAGE = 1
DEFAULT_SIZE = 20
MAX_SIZE = 100

DEFAULT_LIMIT = 50
MAX_LIMIT = 500

def page_limit():
    try:
        page = max(int(request.args.get("page", DEFAULT_PAGE)), 1)
    except Exception:
        page = DEFAULT_PAGE
    try:
        size = int(request.args.get("size", DEFAULT_SIZE))
        size = max(1, min(size, MAX_SIZE))
    except Exception:
        size = DEFAULT_SIZE
    return page, size

def limit_offset():
    """?limit=&offset= for log-style listings."""
    try:
        limit = int(request.args.get("limit", DEFAULT_LIMIT))
        limit = max(1, min(limit, MAX_LIMIT))
    except Exception:
        limit = DEFAULT_LIMIT
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except Exception:
        offset = 0
    return limit, offset

def int_arg(name: str):
    v = request.args.get(name)
    if v is None or v == "":
        return None
    try:
        return int(v)
    except (TypeError, ValueError):
        return None
