"""create zero-trust scanner tables

Revision ID: z1_zerotrust_tables
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa

revision = 'z1_zerotrust_tables'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ── Panel tables the scanner resolves against ──
    op.create_table(
        'node',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(120), nullable=False),
        sa.Column('fqdn', sa.String(255), nullable=False),
        sa.Column('daemon_listen', sa.Integer(), nullable=False, server_default='8080'),
        sa.Column('scheme', sa.String(10), nullable=False, server_default='https'),
        sa.Column('daemon_token', sa.String(255), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )

    op.create_table(
        'server',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('uuid', sa.String(36), nullable=False),
        sa.Column('name', sa.String(191), nullable=False),
        sa.Column('node_id', sa.Integer(), nullable=False),
        sa.Column('suspended', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('skip_zerotrust', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_server_uuid', 'server', ['uuid'], unique=True)
    op.create_index('ix_server_node_id', 'server', ['node_id'])

    op.create_table(
        'setting',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('key', sa.String(191), nullable=False),
        sa.Column('value', sa.Text(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_setting_key', 'setting', ['key'], unique=True)

    # ── Execution history ──
    op.create_table(
        'zerotrust_cron_log',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('execution_id', sa.String(64), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='running'),
        sa.Column('started_at', sa.DateTime(), nullable=False),
        sa.Column('finished_at', sa.DateTime(), nullable=True),
        sa.Column('servers_scanned', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_detections', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_errors', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('summary', sa.Text(), nullable=True),
        sa.Column('details_json', sa.JSON(), nullable=True),
    )
    op.create_index('ix_zerotrust_cron_log_execution_id', 'zerotrust_cron_log', ['execution_id'], unique=True)
    op.create_index('ix_zerotrust_cron_log_status', 'zerotrust_cron_log', ['status'])

    op.create_table(
        'zerotrust_scan_log',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('execution_id', sa.String(64), nullable=False),
        sa.Column('server_id', sa.String(36), nullable=False),
        sa.Column('server_name', sa.String(191), nullable=True),
        sa.Column('node_id', sa.Integer(), nullable=True),
        sa.Column('node_name', sa.String(120), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='completed'),
        sa.Column('files_scanned', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('detections', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('error', sa.String(500), nullable=True),
        sa.Column('duration_seconds', sa.Float(), nullable=True),
        sa.Column('detections_json', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_zerotrust_scan_log_execution_id', 'zerotrust_scan_log', ['execution_id'])

    # ── Suspicious file hash registry ──
    op.create_table(
        'zerotrust_suspicious_hash',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('hash', sa.String(64), nullable=False),
        sa.Column('file_name', sa.String(255), nullable=False),
        sa.Column('detection_type', sa.String(100), nullable=False),
        sa.Column('server_id', sa.String(36), nullable=True),
        sa.Column('server_name', sa.String(191), nullable=True),
        sa.Column('node_id', sa.Integer(), nullable=True),
        sa.Column('file_path', sa.String(1024), nullable=True),
        sa.Column('file_size', sa.BigInteger(), nullable=True),
        sa.Column('times_detected', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('confirmed_malicious', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('metadata_json', sa.JSON(), nullable=True),
        sa.Column('first_seen', sa.DateTime(), nullable=False),
        sa.Column('last_seen', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_zerotrust_suspicious_hash_hash', 'zerotrust_suspicious_hash', ['hash'], unique=True)
    op.create_index('ix_zerotrust_suspicious_hash_detection_type', 'zerotrust_suspicious_hash', ['detection_type'])
    op.create_index('ix_zerotrust_suspicious_hash_confirmed_malicious', 'zerotrust_suspicious_hash', ['confirmed_malicious'])

    # ── Audit trail ──
    op.create_table(
        'audit_log',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('actor', sa.String(255), nullable=True),
        sa.Column('action', sa.String(100), nullable=False),
        sa.Column('category', sa.String(50), nullable=False),
        sa.Column('target_type', sa.String(50), nullable=True),
        sa.Column('target_id', sa.String(50), nullable=True),
        sa.Column('target_label', sa.String(500), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('metadata_json', sa.JSON(), nullable=True),
        sa.Column('ip_address', sa.String(50), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_audit_log_created_at', 'audit_log', ['created_at'])


def downgrade():
    op.drop_index('ix_audit_log_created_at', table_name='audit_log')
    op.drop_table('audit_log')

    op.drop_index('ix_zerotrust_suspicious_hash_confirmed_malicious', table_name='zerotrust_suspicious_hash')
    op.drop_index('ix_zerotrust_suspicious_hash_detection_type', table_name='zerotrust_suspicious_hash')
    op.drop_index('ix_zerotrust_suspicious_hash_hash', table_name='zerotrust_suspicious_hash')
    op.drop_table('zerotrust_suspicious_hash')

    op.drop_index('ix_zerotrust_scan_log_execution_id', table_name='zerotrust_scan_log')
    op.drop_table('zerotrust_scan_log')

    op.drop_index('ix_zerotrust_cron_log_status', table_name='zerotrust_cron_log')
    op.drop_index('ix_zerotrust_cron_log_execution_id', table_name='zerotrust_cron_log')
    op.drop_table('zerotrust_cron_log')

    op.drop_index('ix_setting_key', table_name='setting')
    op.drop_table('setting')

    op.drop_index('ix_server_node_id', table_name='server')
    op.drop_index('ix_server_uuid', table_name='server')
    op.drop_table('server')

    op.drop_table('node')
