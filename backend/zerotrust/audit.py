# =============================================================================
# File: zerotrust/audit.py
# Description: Audit trail for admin and automatic actions.
#
# Actions written by this package:
#   zerotrust: config.updated, server.auto_suspended, scan.single, scan.batch
#   hashes:    hash.added, hash.confirmed, hash.deleted,
#              hash.bulk_confirmed, hash.bulk_deleted
# =============================================================================

from __future__ import annotations

import logging

from flask import has_request_context, request

from zerotrust.extensions import db
from zerotrust.models import AuditLog

logger = logging.getLogger(__name__)


def _clip(value, limit: int) -> str | None:
    return str(value)[:limit] if value else None


def log_audit(
    *,
    action: str,
    category: str,
    actor: str | None = None,
    target_type: str | None = None,
    target_id: str | int | None = None,
    target_label: str | None = None,
    description: str | None = None,
    metadata: dict | None = None,
    ip_address: str | None = None,
) -> AuditLog | None:
    """
    Stage an audit row in the current session without committing it, so it
    lands (or rolls back) together with the change it describes.

    Never raises: a failed audit write is logged and the caller carries on.

        log_audit(
            actor="system",
            action="server.auto_suspended",
            category="zerotrust",
            target_type="server",
            target_id=server.uuid,
            target_label=server.name,
            metadata={"detections": 7, "threshold": 5},
        )
    """
    if ip_address is None and has_request_context():
        ip_address = request.remote_addr

    try:
        entry = AuditLog(
            actor=actor,
            action=action,
            category=category,
            target_type=target_type,
            target_id=None if target_id is None else str(target_id),
            target_label=_clip(target_label, 500),
            description=_clip(description, 2000),
            metadata_json=metadata,
            ip_address=ip_address,
        )
        db.session.add(entry)
        db.session.flush()
        return entry
    except Exception as e:
        logger.warning(f"Failed to write audit log {action}: {e}")
        return None
