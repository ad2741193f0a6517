"""Application-wide constants for chatfleet.

Constants that define application behavior.
For user-configurable settings per deployment, see config.py.
"""

__all__ = [
    # Application identity
    "APP_NAME",
    # Addressing
    "DEFAULT_JID_DOMAIN",
    "LEGACY_JID_DOMAIN",
    # Transport classification
    "LOGGED_OUT_STATUS_CODE",
    # Reconnect policy
    "RECONNECT_BACKOFF_MULTIPLIER",
    "RECONNECT_MAX_DELAY_SECONDS",
    "DEFAULT_RECONNECT_MAX_ATTEMPTS",
    # Status broadcasting
    "SUBSCRIBER_QUEUE_SIZE",
    "SSE_KEEPALIVE_SECONDS",
    # Configuration defaults
    "DEFAULT_PORT",
    "DEFAULT_HOST",
    "DEFAULT_AUTH_BASE_DIR",
    "DEFAULT_RECONNECT_TIMEOUT_MS",
    "DEFAULT_BROADCAST_INTERVAL_MS",
    "DEFAULT_TRANSPORT_FACTORY",
    "LOG_LEVELS",
    # CLI
    "DEFAULT_HTTP_TIMEOUT_SECONDS",
]

# ============================================================================
# Application Identity
# ============================================================================

# Application name used for logger names, directory names, etc.
APP_NAME: str = "chatfleet"

# ============================================================================
# Addressing
# ============================================================================

# Suffix appended to bare phone numbers when sending
DEFAULT_JID_DOMAIN: str = "s.whatsapp.net"

# Older suffix still seen on inbound sender ids
LEGACY_JID_DOMAIN: str = "c.us"

# ============================================================================
# Transport Classification
# ============================================================================

# Close status code the transport uses for "logged out" (permanent close)
LOGGED_OUT_STATUS_CODE: int = 401

# ============================================================================
# Reconnect Policy
# ============================================================================

RECONNECT_BACKOFF_MULTIPLIER: float = 2.0  # Exponential backoff multiplier
RECONNECT_MAX_DELAY_SECONDS: float = 60.0  # Upper bound for a single retry delay
DEFAULT_RECONNECT_MAX_ATTEMPTS: int = 10  # 0 disables the cap

# ============================================================================
# Status Broadcasting
# ============================================================================

# Pending updates per push channel before the subscriber is evicted
SUBSCRIBER_QUEUE_SIZE: int = 100

# Idle interval before an SSE keepalive comment is sent (seconds)
SSE_KEEPALIVE_SECONDS: float = 15.0

# ============================================================================
# Configuration Defaults
# ============================================================================

DEFAULT_PORT: int = 3000
DEFAULT_HOST: str = "localhost"
DEFAULT_AUTH_BASE_DIR: str = ".chatfleet-auth"
DEFAULT_RECONNECT_TIMEOUT_MS: int = 5000
DEFAULT_BROADCAST_INTERVAL_MS: int = 1000
DEFAULT_TRANSPORT_FACTORY: str = "chatfleet.transports.loopback:LoopbackTransport"

# Accepted LOG_LEVEL values, quietest first
LOG_LEVELS: tuple[str, ...] = ("silent", "error", "warn", "info", "debug")

# ============================================================================
# CLI
# ============================================================================

DEFAULT_HTTP_TIMEOUT_SECONDS: float = 10.0
