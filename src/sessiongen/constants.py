from __future__ import annotations

# Event names emitted by the protocol client.
CONNECTION_UPDATE = "connection.update"
CREDS_UPDATE = "creds.update"
KEYS_UPDATE = "keys.update"

# Durable store layout (names kept from the original deployment).
DEFAULT_DB_NAME = "baileys_sessions"
DEFAULT_COLLECTION = "auth_creds"
CREDS_RECORD_ID = "creds"
KEYS_RECORD_ID = "keys"

DEFAULT_PORT = 3000
DEFAULT_HOST = "0.0.0.0"
DEFAULT_BROWSER = ("Session Generator", "Chrome", "1.0")
DEFAULT_QR_TIMEOUT_S = 60.0

# E.164 caps a full international number at 15 digits.
MAX_PHONE_DIGITS = 15
