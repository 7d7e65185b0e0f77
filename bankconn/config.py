"""Core application configuration & tunable connectivity rules.

Everything that may need tuning per deployment (channel timeouts, retry and
circuit thresholds, queue priorities, outbound document identity) is kept
here as module constants so service code never hardcodes them. Values can be
overridden through environment variables; tests monkeypatch the dicts.
"""
from __future__ import annotations

import os


def _env_float(name: str, default: str) -> float:
	return float(os.getenv(name, default))


# -------------------------------- Channels -------------------------------- #
CHANNEL_SETTINGS: dict[str, float | int | str | list[str]] = {
	# Network bounds for every bank channel call (seconds)
	"connect_timeout_seconds": _env_float("BANK_CONNECT_TIMEOUT", "10"),
	"read_timeout_seconds": _env_float("BANK_READ_TIMEOUT", "30"),
	# Overall ceiling for one list/retrieve round trip
	"fetch_timeout_seconds": _env_float("BANK_FETCH_TIMEOUT", "60"),
	"default_max_documents": int(os.getenv("BANK_FETCH_MAX_DOCUMENTS", "50")),
	# Inbound document channels polled when the caller does not name one
	"inbound_channels": ["pain002", "camt054"],
	# Retrieved SFTP files are moved here (relative to in_dir) after download
	"sftp_archive_dir": os.getenv("BANK_SFTP_ARCHIVE_DIR", "processed"),
}

# ---------------------------- Outbound documents -------------------------- #
# Changing any of these changes every rendered fingerprint.
OUTBOUND_SETTINGS: dict[str, str] = {
	"namespace": "urn:iso:std:iso:20022:tech:xsd:pain.001.001.03",
	"filename_prefix": "PAIN001",
	"debtor_name": os.getenv("BANK_DEBTOR_NAME", "Company"),
	"payment_method": "TRF",
}

# ----------------------------- Circuit Breaker ---------------------------- #
CIRCUIT_BREAKER: dict[str, int | float] = {
	"failure_threshold": 5,          # Consecutive channel failures before OPEN
	"open_cooldown_seconds": 300,    # Stay OPEN for 5 minutes
	"half_open_probe_count": 3,      # Probes allowed in HALF_OPEN
}

# --------------------------------- Backoff -------------------------------- #
BACKOFF_POLICY: dict[str, int | float] = {
	"base_seconds": 5,
	"factor": 2,          # Exponential factor
	"max_seconds": 600,
	"max_attempts": 5,    # Worker gives up on a ChannelIO job after this
	"jitter_pct": 0.10,   # +/-10% jitter
}

# --------------------------------- Queue ---------------------------------- #
QUEUE_SETTINGS: dict[str, dict[str, int] | int | float] = {
	"priorities": {  # Lower number = higher priority
		"high": 0,
		"normal": 5,
		"low": 10,
	},
	"warn_depth": 1000,
	"max_in_memory": 5000,
	"poll_timeout_seconds": 5.0,
}

# --------------------------------- Outbox --------------------------------- #
OUTBOX_SETTINGS: dict[str, int] = {
	"delivery_batch_size": int(os.getenv("BANK_OUTBOX_BATCH", "10")),
}

# ------------------------------ Worker toggle ----------------------------- #
ENABLE_CONNECTIVITY_WORKER: bool = os.getenv("ENABLE_CONNECTIVITY_WORKER", "true").lower() in {"1", "true", "yes"}

__all__ = [
	"CHANNEL_SETTINGS",
	"OUTBOUND_SETTINGS",
	"CIRCUIT_BREAKER",
	"BACKOFF_POLICY",
	"QUEUE_SETTINGS",
	"OUTBOX_SETTINGS",
	"ENABLE_CONNECTIVITY_WORKER",
]
