# zerotrust/hashes/service.py
"""
Suspicious file hash registry.

Every detection an agent reports with a SHA-256 "hash" is recorded here by the
orchestrator. Admins review the registry and confirm hashes as malicious; the
confirmed set is what node agents pull to flag known threats.
"""

from __future__ import annotations

import logging
import re
from datetime import timedelta
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import func

from zerotrust.extensions import db
from zerotrust.models import SuspiciousFileHash, now_utc

logger = logging.getLogger(__name__)

_SHA256_RE = re.compile(r"^[a-f0-9]{64}$", re.IGNORECASE)


def is_sha256(value: str) -> bool:
    return bool(value) and bool(_SHA256_RE.match(value))


def hash_to_dict(h: SuspiciousFileHash) -> Dict[str, Any]:
    return {
        "id": str(h.id),
        "hash": h.hash,
        "fileName": h.file_name,
        "detectionType": h.detection_type,
        "serverId": h.server_id,
        "serverName": h.server_name,
        "nodeId": h.node_id,
        "filePath": h.file_path,
        "fileSize": h.file_size,
        "timesDetected": h.times_detected,
        "confirmedMalicious": bool(h.confirmed_malicious),
        "metadata": h.metadata_json or {},
        "firstSeen": h.first_seen.isoformat() if h.first_seen else None,
        "lastSeen": h.last_seen.isoformat() if h.last_seen else None,
    }


def submit_hash(
    hash_value: str,
    file_name: str,
    detection_type: str,
    server_id: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
    commit: bool = True,
) -> bool:
    """Insert a new hash or bump times_detected/last_seen on an existing one."""
    if not hash_value or not file_name or not detection_type:
        logger.error("Invalid hash submission: missing required fields")
        return False

    hash_value = hash_value.strip().lower()
    metadata = metadata or {}
    now = now_utc()

    existing = SuspiciousFileHash.query.filter_by(hash=hash_value).first()
    if existing:
        existing.times_detected = (existing.times_detected or 0) + 1
        existing.last_seen = now
        if server_id is not None:
            existing.server_id = server_id
        if metadata:
            existing.metadata_json = metadata
    else:
        db.session.add(SuspiciousFileHash(
            hash=hash_value,
            file_name=file_name[:255],
            detection_type=detection_type[:100],
            server_id=server_id,
            server_name=metadata.get("server_name"),
            node_id=metadata.get("node_id"),
            file_path=metadata.get("file_path"),
            file_size=metadata.get("file_size"),
            times_detected=1,
            confirmed_malicious=False,
            metadata_json=metadata or None,
            first_seen=now,
            last_seen=now,
        ))

    if commit:
        db.session.commit()
    else:
        db.session.flush()
    return True


def get_hashes(confirmed_only: bool = False) -> List[SuspiciousFileHash]:
    query = SuspiciousFileHash.query
    if confirmed_only:
        query = query.filter(SuspiciousFileHash.confirmed_malicious.is_(True))
    return query.order_by(SuspiciousFileHash.first_seen.desc(), SuspiciousFileHash.id.desc()).all()


def check_hashes(hashes: Iterable[str], confirmed_only: bool = False) -> List[SuspiciousFileHash]:
    wanted = [h.strip().lower() for h in hashes if isinstance(h, str) and h.strip()]
    if not wanted:
        return []
    query = SuspiciousFileHash.query.filter(SuspiciousFileHash.hash.in_(wanted))
    if confirmed_only:
        query = query.filter(SuspiciousFileHash.confirmed_malicious.is_(True))
    return query.all()


def get_stats() -> Dict[str, Any]:
    total = SuspiciousFileHash.query.count()
    confirmed = SuspiciousFileHash.query.filter(
        SuspiciousFileHash.confirmed_malicious.is_(True)
    ).count()
    recent = SuspiciousFileHash.query.filter(
        SuspiciousFileHash.last_seen >= now_utc() - timedelta(hours=24)
    ).count()
    servers = (
        db.session.query(func.count(func.distinct(SuspiciousFileHash.server_id)))
        .filter(SuspiciousFileHash.server_id.isnot(None))
        .scalar()
    ) or 0

    top_types = (
        db.session.query(SuspiciousFileHash.detection_type, func.count(SuspiciousFileHash.id))
        .group_by(SuspiciousFileHash.detection_type)
        .order_by(func.count(SuspiciousFileHash.id).desc())
        .limit(10)
        .all()
    )

    return {
        "totalHashes": total,
        "confirmedHashes": confirmed,
        "unconfirmedHashes": total - confirmed,
        "recentDetections": recent,
        "totalServers": int(servers),
        "topDetectionTypes": [
            {"detectionType": t, "count": c} for t, c in top_types
        ],
    }


def confirm_malicious(hash_value: str, commit: bool = True) -> bool:
    row = SuspiciousFileHash.query.filter_by(hash=hash_value.strip().lower()).first()
    if not row:
        return False
    row.confirmed_malicious = True
    if commit:
        db.session.commit()
    return True


def delete_hash(hash_value: str, commit: bool = True) -> bool:
    row = SuspiciousFileHash.query.filter_by(hash=hash_value.strip().lower()).first()
    if not row:
        return False
    db.session.delete(row)
    if commit:
        db.session.commit()
    return True
