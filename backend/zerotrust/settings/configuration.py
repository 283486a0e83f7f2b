# zerotrust/settings/configuration.py
"""
Detection configuration, stored as key/value rows in the `setting` table
under the "zerotrust." prefix.

    config = load_config()          # frozen snapshot for ONE operation
    update_config({"suspend_threshold": 5, "auto_suspend": True})

Every scan operation calls load_config() once at its start and passes the
snapshot down explicitly. Nothing here caches across operations, so an admin
change takes effect on the next scan and never mid-scan.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, Optional
from urllib.parse import urlparse

from zerotrust.extensions import db
from zerotrust.models import Setting

logger = logging.getLogger(__name__)

PREFIX = "zerotrust."
SECRET_MASK = "••••"


# Scanner-tuning keys the agent side understands. Stored and returned
# verbatim; this subsystem never interprets them.
DEFAULT_EXTRAS: Dict[str, Any] = {
    "ignored_extensions": [
        ".jar", ".phar", ".rar", ".zip", ".tar.gz", ".7z", ".gz", ".xz",
        ".bz2", ".log", ".logs", ".txt", ".yml", ".yaml", ".json",
        ".properties", ".db", ".toml", ".mca",
    ],
    "ignored_files": [
        "velocity.toml", "server.jar.old", "latest.log", "debug.log",
        "error.log", "access.log", "server.log", "usermap.bin",
        "forbidden-players.txt", "help.yml", "commands.yml", "permissions.yml",
    ],
    "ignored_paths": [
        "proxy.log.0", "proxy.log",
        "plugins/.paper-remapped", "plugins/CoreProtect/database.db",
        "plugins/PlaceholderAPI/javascripts/example.js",
        "plugins/Geyser-Spigot/locales", "plugins/Geyser-Velocity/locales",
        "plugins/Essentials", "plugins/ViaVersion/cache",
        "cache", "logs", "crash-reports",
        "world/playerdata", "world/stats", "world/advancements", "world/region",
    ],
    "suspicious_extensions": [".sh", ".bat", ".cmd", ".exe", ".jar", ".dll", ".so"],
    "suspicious_names": [
        "mine.sh", "proxies.txt", "proxy.txt", "whatsapp.js", "wa_bot.js",
        "start.sh", "run.sh", "crypto", "miner", "bot", "hack", "exploit",
    ],
    "suspicious_cache": ["cpuminer", "cpuminer-avx2", "xmrig"],
    "max_jar_size": 5242880,  # 5MB
    "suspicious_patterns": [
        "stratum+tcp://", "pool.", "miningpool", "proxy.*=.*http",
        "socks.*=.*http", "eval(", "base64_decode(", "gzinflate(",
        "whatsapp", "@whastapp", "baileys",
    ],
    "malicious_processes": ["xmrig", "earnfm", "mcstorm.jar", "proot", "destine", "hashvault"],
    "whatsapp_indicators": [
        "whatsapp-web.js", "whatsapp-web-js", "webwhatsapi", "yowsup",
        "wa-automate", "baileys",
    ],
    "miner_indicators": [
        "xmrig", "ethminer", "cpuminer", "bfgminer", "cgminer", "minerd",
        "cryptonight", "stratum+tcp", "minexmr", "nanopool", "minergate",
    ],
    "suspicious_ports": [1080, 3128, 8080, 8118, 9150, 9001, 9030],
    "suspicious_words": [
        "new job from", "noVNC", "Downloading fresh proxies...",
        "FAILED TO APPLY MSR MOD", "Tor server's identity key",
        "Stratum - Connected", "eth.2miners.com:2020", "whatsapp",
        "wa-automate", "whatsapp-web.js", "baileys", "port 3000",
    ],
    "suspicious_content": [
        "stratum", "cryptonight", "proxies...", "const _0x1a1f74=",
        "app['listen']", "minexmr.com", "herominers", "hashvault", "xmrig",
        "nanopool.org", "ethpool.org", "2miners.com",
    ],
    "legitimate_log_patterns": [
        "Done (", "Starting minecraft server version", "Preparing spawn area",
        "Loading libraries", 'For help, type "help"', "Loaded ",
        "Preparing start region", "Time elapsed", "Startup script",
    ],
    "high_cpu_threshold": 0.96,
    "high_network_usage": 4294967296,       # 4GB
    "small_volume_size": 3.5,               # MB
    "recent_account_threshold": 604800000,  # 7 days in ms
}


@dataclass(frozen=True)
class DetectionConfig:
    """Immutable snapshot of the detection settings."""
    enabled: bool = False
    scan_interval: int = 15               # minutes
    max_depth: int = 10
    max_file_size: int = 10485760         # bytes (10MB)
    auto_suspend: bool = False
    suspend_threshold: int = 1            # detections >= threshold → suspend
    webhook_enabled: bool = False
    webhook_url: Optional[str] = None
    webhook_secret: Optional[str] = None
    extras: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        out = asdict(self)
        extras = out.pop("extras")
        out.update(extras)
        # Never echo the signing secret back to the UI
        out["webhook_secret"] = SECRET_MASK if self.webhook_secret else None
        return out


_BOOL_KEYS = {"enabled", "auto_suspend", "webhook_enabled"}
_INT_KEYS = {"scan_interval", "max_depth", "max_file_size", "suspend_threshold"}
_STR_KEYS = {"webhook_url", "webhook_secret"}
KNOWN_KEYS = _BOOL_KEYS | _INT_KEYS | _STR_KEYS


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------

def _encode(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, dict)):
        return json.dumps(value)
    return str(value)


def _decode_known(key: str, raw: Optional[str], default: Any) -> Any:
    if raw is None:
        return default
    if key in _BOOL_KEYS:
        return raw.strip().lower() == "true"
    if key in _INT_KEYS:
        try:
            return int(raw)
        except (TypeError, ValueError):
            logger.warning(f"Ignoring non-integer setting {PREFIX}{key}={raw!r}")
            return default
    return raw or None


def _decode_extra(raw: Optional[str], default: Any) -> Any:
    if raw is None:
        return default
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        return raw


def validate_update(data: Dict[str, Any]) -> Optional[str]:
    """Return an error message if the partial update is malformed, else None."""
    for key in _INT_KEYS & data.keys():
        value = data[key]
        if isinstance(value, bool) or not isinstance(value, int):
            return f"{key} must be an integer"
        if value < 0:
            return f"{key} must be >= 0"
    if data.get("scan_interval") == 0:
        return "scan_interval must be >= 1"
    for key in _BOOL_KEYS & data.keys():
        if not isinstance(data[key], bool):
            return f"{key} must be a boolean"
    for key in _STR_KEYS & data.keys():
        if data[key] is not None and not isinstance(data[key], str):
            return f"{key} must be a string"
    url = data.get("webhook_url")
    if url and not is_valid_webhook_url(url):
        return "webhook_url must be an http(s) URL"
    return None


def is_valid_webhook_url(url: Optional[str]) -> bool:
    if not url or not isinstance(url, str):
        return False
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


# ---------------------------------------------------------------------------
# Load / update
# ---------------------------------------------------------------------------

def load_config() -> DetectionConfig:
    """Read the whole detection config from the database."""
    rows = Setting.query.filter(Setting.key.startswith(PREFIX)).all()
    stored = {r.key[len(PREFIX):]: r.value for r in rows}

    defaults = DetectionConfig()
    known = {
        key: _decode_known(key, stored.get(key), getattr(defaults, key))
        for key in KNOWN_KEYS
    }

    extras = {k: _decode_extra(stored.get(k), v) for k, v in DEFAULT_EXTRAS.items()}
    for key, raw in stored.items():
        if key not in KNOWN_KEYS and key not in extras:
            extras[key] = _decode_extra(raw, None)

    return DetectionConfig(extras=extras, **known)


def update_config(data: Dict[str, Any]) -> DetectionConfig:
    """
    Merge a partial key set into the stored config and return the new snapshot.

    Keys not present in `data` are left untouched. Commits the session.
    """
    for key, value in data.items():
        setting_key = PREFIX + key
        row = Setting.query.filter_by(key=setting_key).first()
        if row is None:
            row = Setting(key=setting_key)
            db.session.add(row)
        row.value = _encode(value)

    db.session.commit()
    logger.info(f"Detection config updated: {sorted(data.keys())}")
    return load_config()
