"""Package identity, service endpoints and shared timing constants."""

from __future__ import annotations

CLIENT_NAME = "hcapi"
CLIENT_VERSION = "0.4.0"

# Service endpoints
PRODUCTION_URL = "https://api.home-connect.com"
SIMULATOR_URL = "https://simulator.home-connect.com"
CHINA_URL = "https://api.home-connect.cn"

# Authorisation endpoints
AUTHORIZE_PATH = "/security/oauth/authorize"
TOKEN_PATH = "/security/oauth/token"
DEVICE_AUTHORIZATION_PATH = "/security/oauth/device_authorization"
AUTH_PATH_PREFIX = "/security/oauth/"

# Data endpoints
APPLIANCES_PATH = "/api/homeappliances"

# Scopes requested unless configured otherwise
API_SCOPES = ["IdentifyAppliance", "Monitor", "Control", "Settings"]

# Media types
VENDOR_JSON = "application/vnd.bsh.sdk.v1+json"
JSON_CONTENT_TYPES = ("application/json", VENDOR_JSON)
FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"
EVENT_STREAM_CONTENT_TYPE = "text/event-stream"

# Transport timeouts (seconds); reads must outlast the 55 second keep-alive
REQUEST_TIMEOUT = 20.0
STREAM_TIMEOUT = 120.0

# Methods that may be repeated without side effects
IDEMPOTENT_METHODS = frozenset({"GET", "HEAD", "PUT", "DELETE", "OPTIONS", "TRACE"})

# Status codes that are never worth retrying
NO_RETRY_STATUS_CODES = frozenset({400, 403, 404, 405, 406, 409, 415})

# Rate-limit waits at or above this are logged as warnings (seconds)
RETRY_WARNING_THRESHOLD = 10.0

# Pre-filled issue form for reporting unrecognised keys/values
NEW_ISSUE_URL = (
    "https://github.com/thoukydides/homebridge-homeconnect/issues/new"
    "?template=key_value.yml&labels=api+keys%2Fvalues"
)
