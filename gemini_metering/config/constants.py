"""Fixed names shared by the config store, shell wiring and telemetry client."""

VERSION = "0.3.0"

DEFAULT_REVENIUM_URL = "https://api.revenium.ai"

# Appended to the base URL to form the OTLP export endpoint
OTLP_PATH = "/meter/v2/otlp"
# Older releases wrote this suffix; still recognised when loading
LEGACY_OTLP_PATHS = ("/meter/v2/ai/otlp",)
OTLP_LOGS_PATH = "/v1/logs"

API_KEY_PREFIX = "hak_"
API_KEY_MIN_LENGTH = 12
EMAIL_MAX_LENGTH = 254
FREE_TEXT_MAX_LENGTH = 255

DEFAULT_COST_MULTIPLIER = 1.0

GEMINI_CONFIG_DIR = ".gemini"
REVENIUM_ENV_FILE = "revenium.env"
REVENIUM_FISH_FILE = "revenium.fish"

CONFIG_DIR_MODE = 0o700
CONFIG_FILE_MODE = 0o600

# Gemini CLI telemetry settings
TELEMETRY_ENABLED = "GEMINI_TELEMETRY_ENABLED"
TELEMETRY_TARGET = "GEMINI_TELEMETRY_TARGET"
TELEMETRY_OTLP_ENDPOINT = "GEMINI_TELEMETRY_OTLP_ENDPOINT"
TELEMETRY_OTLP_PROTOCOL = "GEMINI_TELEMETRY_OTLP_PROTOCOL"
TELEMETRY_LOG_PROMPTS = "GEMINI_TELEMETRY_LOG_PROMPTS"

# Gemini CLI has no OTLP header support, so the API key rides in here
RESOURCE_ATTRIBUTES = "OTEL_RESOURCE_ATTRIBUTES"

SUBSCRIBER_EMAIL = "REVENIUM_SUBSCRIBER_EMAIL"
ORGANIZATION_NAME = "REVENIUM_ORGANIZATION_NAME"
PRODUCT_NAME = "REVENIUM_PRODUCT_NAME"
COST_MULTIPLIER = "REVENIUM_COST_MULTIPLIER"
LEGACY_ORGANIZATION_ID = "REVENIUM_ORGANIZATION_ID"
LEGACY_PRODUCT_ID = "REVENIUM_PRODUCT_ID"

# Resource attribute keys inside OTEL_RESOURCE_ATTRIBUTES
ATTR_API_KEY = "revenium.api_key"
ATTR_EMAIL = "user.email"
ATTR_ORGANIZATION = "organization.name"
ATTR_PRODUCT = "product.name"
ATTR_COST_MULTIPLIER = "cost_multiplier"
ATTR_LEGACY_ORGANIZATION = "organization.id"
ATTR_LEGACY_PRODUCT = "product.id"

SERVICE_NAME = "gemini-cli"
MIDDLEWARE_SOURCE = "revenium-gemini-cli-sdk"

PROFILE_MARKER_START = "# >>> revenium-gemini-cli-metering >>>"
PROFILE_MARKER_END = "# <<< revenium-gemini-cli-metering <<<"
PROFILE_BACKUP_SUFFIX = ".revenium-backup-"
