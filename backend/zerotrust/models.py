from __future__ import annotations

from datetime import datetime, timezone
from .extensions import db


def now_utc() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


# =============================================================================
# Panel entities the scanner reads (owned by the panel, modelled minimally)
# =============================================================================

class Node(db.Model):
    __tablename__ = "node"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)

    # Agent connection details
    fqdn = db.Column(db.String(255), nullable=False)
    daemon_listen = db.Column(db.Integer, nullable=False, default=8080)
    scheme = db.Column(db.String(10), nullable=False, default="https")  # http, https
    daemon_token = db.Column(db.String(255), nullable=False)

    created_at = db.Column(db.DateTime, nullable=False, default=now_utc)
    updated_at = db.Column(db.DateTime, nullable=False, default=now_utc, onupdate=now_utc)


class Server(db.Model):
    __tablename__ = "server"

    id = db.Column(db.Integer, primary_key=True)
    uuid = db.Column(db.String(36), nullable=False, unique=True, index=True)
    name = db.Column(db.String(191), nullable=False)
    node_id = db.Column(db.Integer, nullable=False, index=True)

    # Only the suspension engine flips this, and only false → true
    suspended = db.Column(db.Boolean, nullable=False, default=False)
    skip_zerotrust = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime, nullable=False, default=now_utc)
    updated_at = db.Column(db.DateTime, nullable=False, default=now_utc, onupdate=now_utc)


class Setting(db.Model):
    """Key/value panel setting. Detection config lives under the 'zerotrust.' prefix."""
    __tablename__ = "setting"

    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(191), nullable=False, unique=True, index=True)
    value = db.Column(db.Text, nullable=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=now_utc, onupdate=now_utc)


# =============================================================================
# Scheduled execution history
# =============================================================================

class CronExecutionLog(db.Model):
    __tablename__ = "zerotrust_cron_log"

    id = db.Column(db.Integer, primary_key=True)
    execution_id = db.Column(db.String(64), nullable=False, unique=True, index=True)

    # running → completed | failed, set once
    status = db.Column(db.String(20), nullable=False, default="running", index=True)

    started_at = db.Column(db.DateTime, nullable=False, default=now_utc)
    finished_at = db.Column(db.DateTime, nullable=True)

    servers_scanned = db.Column(db.Integer, nullable=False, default=0)
    total_detections = db.Column(db.Integer, nullable=False, default=0)
    total_errors = db.Column(db.Integer, nullable=False, default=0)

    summary = db.Column(db.Text, nullable=True)
    details_json = db.Column(db.JSON, nullable=True)   # duration, per-node breakdown


class ScanLog(db.Model):
    __tablename__ = "zerotrust_scan_log"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    execution_id = db.Column(db.String(64), nullable=False, index=True)

    server_id = db.Column(db.String(36), nullable=False)
    server_name = db.Column(db.String(191), nullable=True)
    node_id = db.Column(db.Integer, nullable=True)
    node_name = db.Column(db.String(120), nullable=True)

    status = db.Column(db.String(20), nullable=False, default="completed")  # completed, failed
    files_scanned = db.Column(db.Integer, nullable=False, default=0)
    detections = db.Column(db.Integer, nullable=False, default=0)
    error = db.Column(db.String(500), nullable=True)
    duration_seconds = db.Column(db.Float, nullable=True)
    detections_json = db.Column(db.JSON, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=now_utc)


# =============================================================================
# Suspicious file hash registry
# =============================================================================

class SuspiciousFileHash(db.Model):
    __tablename__ = "zerotrust_suspicious_hash"

    id = db.Column(db.Integer, primary_key=True)
    hash = db.Column(db.String(64), nullable=False, unique=True, index=True)
    file_name = db.Column(db.String(255), nullable=False)
    detection_type = db.Column(db.String(100), nullable=False, index=True)

    server_id = db.Column(db.String(36), nullable=True)
    server_name = db.Column(db.String(191), nullable=True)
    node_id = db.Column(db.Integer, nullable=True)
    file_path = db.Column(db.String(1024), nullable=True)
    file_size = db.Column(db.BigInteger, nullable=True)

    times_detected = db.Column(db.Integer, nullable=False, default=1)
    confirmed_malicious = db.Column(db.Boolean, nullable=False, default=False, index=True)
    metadata_json = db.Column(db.JSON, nullable=True)

    first_seen = db.Column(db.DateTime, nullable=False, default=now_utc)
    last_seen = db.Column(db.DateTime, nullable=False, default=now_utc)


# =============================================================================
# Audit trail
# =============================================================================

class AuditLog(db.Model):
    __tablename__ = "audit_log"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    actor = db.Column(db.String(255), nullable=True)          # 'system' for automated actions

    # What happened
    action = db.Column(db.String(100), nullable=False)      # e.g. 'server.auto_suspended'
    category = db.Column(db.String(50), nullable=False)      # e.g. 'zerotrust'

    # What it happened to
    target_type = db.Column(db.String(50), nullable=True)    # e.g. 'server'
    target_id = db.Column(db.String(50), nullable=True)
    target_label = db.Column(db.String(500), nullable=True)

    # Details
    description = db.Column(db.Text, nullable=True)
    metadata_json = db.Column(db.JSON, nullable=True)
    ip_address = db.Column(db.String(50), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=now_utc, index=True)
