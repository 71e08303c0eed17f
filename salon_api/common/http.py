# salon_api/common/http.py
from decimal import Decimal

from flask import jsonify

def ok(data=None, status=200, **meta):
    payload = {"success": True, "data": data}
    if meta:
        payload["meta"] = meta
    return jsonify(payload), status

def fail(message="Bad Request", status=400, code=None, detail=None, errors=None):
    err = {"message": message}
    if code: err["code"] = code
    if detail: err["detail"] = detail
    if errors: err["errors"] = errors
    return jsonify({"success": False, "error": err}), status

def money(x):
    """Decimal → float for JSON bodies (None stays None)."""
    if x is None:
        return None
    return float(x) if isinstance(x, Decimal) else x

def iso(d):
    return d.isoformat() if d is not None else None
