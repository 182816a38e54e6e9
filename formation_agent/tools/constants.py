"""Constants for field identification, matching and autofill."""

# Eligibility
MIN_VISIBLE_SIZE = 10  # px, both width and height
EXCLUDED_INPUT_TYPES = ("password", "hidden", "submit", "button", "reset", "file", "image")
SUPPORTED_INPUT_TYPES = ("text", "email", "tel", "url", "search", "number")
SENSITIVE_INPUT_TYPES = ("password",)

# Selector generation
TEST_ID_ATTRIBUTES = ("data-testid", "data-test-id", "data-cy", "data-qa", "data-test")

# Similarity Thresholds (0.0 to 1.0)
EXACT_SIMILARITY_THRESHOLD = 0.8
MEDIUM_SIMILARITY_THRESHOLD = 0.5
CONTAINMENT_SIMILARITY = 0.8
VERIFICATION_THRESHOLD = 0.70

# Types that may stand in for one another across page versions
COMPATIBLE_TYPE_GROUPS = (
    ("text", "search", "url"),
    ("date", "datetime-local"),
)

# Autofill
FILL_EVENTS = ("input", "change", "blur")
HIGHLIGHT_COLOR = "#28a745"
HIGHLIGHT_DURATION = 2.0  # seconds

# Retention
MAX_MEMORIES_PER_SITE = 10
MAX_TOTAL_MEMORIES = 1000
AUTO_CLEANUP_DAYS = 365
