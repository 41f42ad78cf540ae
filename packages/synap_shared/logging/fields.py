"""Canonical logging field names shared by every pipeline component.

Keeping the names in one place stops services drifting apart in what they
call the same thing in structured logs.
"""

TIMESTAMP = "timestamp"
LEVEL = "level"
LOGGER = "logger"
MESSAGE = "message"
EVENT = "event"

# Envelope/correlation fields.
TRACE_ID = "trace_id"
ENVELOPE_ID = "envelope_id"
PARENT_ID = "parent_id"
SOURCE = "source"
PRINCIPAL = "principal"

# Pipeline event fields.
EVENT_ID = "event_id"
EVENT_TYPE = "event_type"
SUBJECT_ID = "subject_id"
CORRELATION_ID = "correlation_id"
CAUSATION_ID = "causation_id"
SUBSCRIPTION_ID = "subscription_id"
ATTEMPT = "attempt"
LANE = "lane"
PROPOSAL_ID = "proposal_id"
WORKER = "worker"

# Public API invocation fields.
COMPONENT_ID = "component_id"
API_NAME = "api_name"
PUBLIC_API_INVOCATION_EVENT = "public_api_invocation"
PUBLIC_API_COMPLETION_EVENT = "public_api_completion"
PUBLIC_API_INSTRUMENTATION_FAILURE_EVENT = "public_api_instrumentation_failure"
SUCCESS = "success"
DURATION_MS = "duration_ms"
ERRORS = "errors"
OUTCOME = "outcome"
ERROR_CATEGORY = "error_category"
STAGE = "stage"
CONCERN = "concern"

# Common service-level fields.
SERVICE = "service"
ENVIRONMENT = "environment"
