# =============================================================================
# File: zerotrust/hashes/routes.py
# Description: Suspicious file hash registry endpoints.
#
# Endpoints:
#   GET    /admin/zerotrust/hashes                   list (?confirmed_only=true)
#   GET    /admin/zerotrust/hashes/stats             registry statistics
#   POST   /admin/zerotrust/hashes/check             look up up to 1000 hashes
#   POST   /admin/zerotrust/hashes                   add a hash manually
#   POST   /admin/zerotrust/hashes/<hash>/confirm    mark as confirmed malicious
#   POST   /admin/zerotrust/hashes/bulk/confirm      confirm many
#   POST   /admin/zerotrust/hashes/bulk/delete       delete many
#   DELETE /admin/zerotrust/hashes/<hash>            delete one
# =============================================================================

from __future__ import annotations

import time

from flask import Blueprint, jsonify, request

from zerotrust.audit import log_audit
from zerotrust.extensions import db
from zerotrust.hashes import service

hashes_bp = Blueprint("zerotrust_hashes", __name__, url_prefix="/admin/zerotrust/hashes")

MAX_CHECK = 1000


def _flag(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in ("1", "true", "yes")


def _hash_list(data):
    """Pull a list of non-empty hash strings out of {"hashes": [...]}, or None."""
    if not isinstance(data, dict) or not isinstance(data.get("hashes"), list):
        return None
    return [h.strip() for h in data["hashes"] if isinstance(h, str) and h.strip()]


# =========================================================
# READ
# =========================================================

@hashes_bp.get("")
def list_hashes():
    confirmed_only = _flag(request.args.get("confirmed_only"))
    rows = service.get_hashes(confirmed_only)
    return jsonify(hashes=[service.hash_to_dict(h) for h in rows], total=len(rows)), 200


@hashes_bp.get("/stats")
def hash_stats():
    return jsonify(service.get_stats()), 200


@hashes_bp.post("/check")
def check_hashes():
    data = request.get_json(silent=True)
    hashes = _hash_list(data)
    if hashes is None:
        return jsonify(error="INVALID_HASHES", message="Missing or invalid hashes array"), 400
    if len(data["hashes"]) > MAX_CHECK:
        return jsonify(error="TOO_MANY_HASHES", message=f"Maximum {MAX_CHECK} hashes per request"), 400

    matches = service.check_hashes(hashes, _flag(data.get("confirmed_only")))
    return jsonify(
        matches=[service.hash_to_dict(h) for h in matches],
        totalChecked=len(data["hashes"]),
        matchesFound=len(matches),
    ), 200


# =========================================================
# WRITE
# =========================================================

@hashes_bp.post("")
def add_hash():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify(error="INVALID_DATA", message="Request body must be a JSON object"), 400

    for field in ("hash", "file_name", "detection_type"):
        if not isinstance(data.get(field), str) or not data[field].strip():
            return jsonify(error=f"MISSING_{field.upper()}", message=f"Missing {field} field"), 400

    hash_value = data["hash"].strip().lower()
    if not service.is_sha256(hash_value):
        return jsonify(
            error="INVALID_HASH_FORMAT",
            message="Invalid hash format. Must be a valid SHA-256 hash (64 hexadecimal characters)",
        ), 400

    try:
        file_size = int(data["file_size"]) if data.get("file_size") is not None else None
        node_id = int(data["node_id"]) if data.get("node_id") is not None else None
    except (TypeError, ValueError):
        return jsonify(error="INVALID_DATA", message="file_size and node_id must be integers"), 400

    metadata = {
        "file_path": data.get("file_path"),
        "file_size": file_size,
        "server_name": data.get("server_name"),
        "node_id": node_id,
        "added_by": "manual",
        "added_at": int(time.time()),
    }

    service.submit_hash(
        hash_value,
        data["file_name"].strip(),
        data["detection_type"].strip(),
        data.get("server_uuid"),
        metadata,
        commit=False,
    )
    if data.get("confirmed_malicious") is True:
        service.confirm_malicious(hash_value, commit=False)

    log_audit(
        action="hash.added",
        category="hashes",
        target_type="hash",
        target_id=hash_value[:50],
        target_label=data["file_name"],
        description=f"Added suspicious hash for {data['file_name']}",
        metadata={"detection_type": data["detection_type"], "confirmed": data.get("confirmed_malicious") is True},
    )
    db.session.commit()

    return jsonify(hash=hash_value), 201


@hashes_bp.post("/<hash_value>/confirm")
def confirm_hash(hash_value: str):
    if not service.confirm_malicious(hash_value, commit=False):
        return jsonify(error="HASH_NOT_FOUND", message="Hash not found"), 404

    log_audit(
        action="hash.confirmed",
        category="hashes",
        target_type="hash",
        target_id=hash_value[:50],
        description="Confirmed hash as malicious",
    )
    db.session.commit()
    return jsonify(hash=hash_value.strip().lower()), 200


@hashes_bp.delete("/<hash_value>")
def delete_hash(hash_value: str):
    if not service.delete_hash(hash_value, commit=False):
        return jsonify(error="HASH_NOT_FOUND", message="Hash not found"), 404

    log_audit(
        action="hash.deleted",
        category="hashes",
        target_type="hash",
        target_id=hash_value[:50],
        description="Deleted suspicious hash",
    )
    db.session.commit()
    return jsonify(hash=hash_value.strip().lower()), 200


# =========================================================
# BULK
# =========================================================

@hashes_bp.post("/bulk/confirm")
def bulk_confirm():
    hashes = _hash_list(request.get_json(silent=True))
    if hashes is None:
        return jsonify(error="INVALID_HASHES", message="Missing or invalid hashes array"), 400

    confirmed, failed = 0, []
    for h in hashes:
        if service.confirm_malicious(h, commit=False):
            confirmed += 1
        else:
            failed.append(h)

    log_audit(
        action="hash.bulk_confirmed",
        category="hashes",
        target_type="hash",
        description=f"Confirmed {confirmed} hash(es) as malicious",
        metadata={"confirmed": confirmed, "failed": len(failed)},
    )
    db.session.commit()
    return jsonify(confirmed=confirmed, failed=failed, total=len(hashes)), 200


@hashes_bp.post("/bulk/delete")
def bulk_delete():
    hashes = _hash_list(request.get_json(silent=True))
    if hashes is None:
        return jsonify(error="INVALID_HASHES", message="Missing or invalid hashes array"), 400

    deleted, failed = 0, []
    for h in hashes:
        if service.delete_hash(h, commit=False):
            deleted += 1
        else:
            failed.append(h)

    log_audit(
        action="hash.bulk_deleted",
        category="hashes",
        target_type="hash",
        description=f"Deleted {deleted} hash(es)",
        metadata={"deleted": deleted, "failed": len(failed)},
    )
    db.session.commit()
    return jsonify(deleted=deleted, failed=failed, total=len(hashes)), 200
