"""Shared error code constants.

Generic codes first, then the pipeline-wide codes used by more than one
service. Codes used by a single service stay in that service's module.
"""

# Validation
VALIDATION_ERROR = "VALIDATION_ERROR"
INVALID_ARGUMENT = "INVALID_ARGUMENT"
UNKNOWN_EVENT_TYPE = "UNKNOWN_EVENT_TYPE"
INVALID_EVENT_CHAIN = "INVALID_EVENT_CHAIN"

# Not found
NOT_FOUND = "NOT_FOUND"
RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"

# Conflict
CONFLICT = "CONFLICT"
ALREADY_EXISTS = "ALREADY_EXISTS"
PROPOSAL_ALREADY_RESOLVED = "PROPOSAL_ALREADY_RESOLVED"
MUTATION_CONFLICT = "MUTATION_CONFLICT"
OUTCOME_ALREADY_RECORDED = "OUTCOME_ALREADY_RECORDED"

# Policy / authorization
POLICY_VIOLATION = "POLICY_VIOLATION"
PERMISSION_DENIED = "PERMISSION_DENIED"
VALIDATION_POLICY_ERROR = "VALIDATION_POLICY_ERROR"

# Dependency / external system
DEPENDENCY_FAILURE = "DEPENDENCY_FAILURE"
DEPENDENCY_TIMEOUT = "DEPENDENCY_TIMEOUT"
DEPENDENCY_UNAVAILABLE = "DEPENDENCY_UNAVAILABLE"

# Internal
INTERNAL_ERROR = "INTERNAL_ERROR"
UNEXPECTED_EXCEPTION = "UNEXPECTED_EXCEPTION"
