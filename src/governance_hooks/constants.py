"""Constants for the governance hooks."""

# Workspace layout (relative to the workspace root)
ORCHESTRATION_DIR = ".orchestration"
DEFAULT_INTENTS_PATH = f"{ORCHESTRATION_DIR}/active_intents.yaml"
DEFAULT_LEDGER_PATH = f"{ORCHESTRATION_DIR}/agent_trace.jsonl"

# Bumped whenever the gate's command table or resolution policy changes
RULESET_VERSION = "1"

DEFAULT_APPROVAL_TIMEOUT_S = 120.0
DEFAULT_LEDGER_RETRIES = 3
LEDGER_RETRY_BACKOFF_S = 0.05

DEFAULT_ENTITY_TYPE = "AI"
DEFAULT_MODEL_IDENTIFIER = "unknown"
UNKNOWN_REVISION = "unknown"

# Stub scope used when an intent id cannot be resolved in permissive mode
PERMISSIVE_SCOPE = ("**",)
