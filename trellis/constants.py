DEFAULT_NAMESPACE = "trellis"

# One week, in seconds.
DEFAULT_TTL = 7 * 24 * 60 * 60

DEFAULT_MAX_ATTEMPTS = 3

# Lifetime of an identifier reservation that was never followed by a persist.
RESERVATION_TTL = 60 * 60

WORKFLOW_KEY_PREFIX = "workflow"
JOB_KEY_PREFIX = "job"
