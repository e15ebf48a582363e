# backend/clinic_core/audit/constants.py

# Actions that may legitimately be written without an actor.
ANONYMOUS_ACTIONS = frozenset({"LOGIN_FAILED", "TOKEN_REFRESH_FAILED"})

# Actions that count as an access to a resource's contents.
ACCESS_ACTIONS = frozenset({"VIEW_LIST", "VIEW_DETAILED", "CREATE", "UPDATE", "DELETE", "EXPORT"})

PATIENT_RESOURCE_TYPES = ("Patient", "PatientHistory")
AUTH_RESOURCE_TYPE = "Authentication"

REDACTED = "[REDACTED]"

# snake_case and camelCase spellings are both matched (case-insensitively)
SENSITIVE_KEYS = frozenset(
    {
        "password",
        "confirm_password",
        "confirmpassword",
        "reset_password_token",
        "resetpasswordtoken",
        "email_verification_token",
        "emailverificationtoken",
        "refresh_token",
        "refreshtoken",
        "access_token",
        "accesstoken",
    }
)


class SecurityEventType:
    MULTIPLE_FAILED_LOGINS = "MULTIPLE_FAILED_LOGINS"


class Severity:
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
