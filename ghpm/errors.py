"""Exception taxonomy shared by the core and the CLI."""


class GhpmError(Exception):
    """Base class for every error raised by ghpm."""


class TemplateParseError(GhpmError, ValueError):
    """Raised when an issue template cannot be parsed or fails schema checks."""


class TemplateNotFoundError(GhpmError):
    def __init__(self, issue_type: str, reasons: list[str]) -> None:
        self.issue_type = issue_type
        self.reasons = reasons
        detail = "; ".join(reasons) if reasons else "no template sources configured"
        super().__init__(f"No usable template for type '{issue_type}': {detail}")


class FieldError(GhpmError):
    """A single template field violation."""


class MissingRequiredFieldsError(FieldError):
    def __init__(self, fields: list[str]) -> None:
        self.fields = fields
        super().__init__(f"Missing required field(s): {', '.join(fields)}")


class InvalidFieldValueError(FieldError):
    def __init__(self, field: str, value: str, allowed: list[str]) -> None:
        self.field = field
        self.value = value
        self.allowed = allowed
        super().__init__(f"Invalid value '{value}' for field '{field}'. Allowed: {', '.join(allowed) or '(none)'}")


class FieldValidationError(GhpmError):
    """Aggregate of every FieldError found in one validation pass."""

    def __init__(self, errors: list[FieldError]) -> None:
        self.errors = errors
        super().__init__("Field validation failed:\n" + "\n".join(f"  - {e}" for e in errors))


class RelationshipConstraintError(GhpmError):
    """Raised before any remote call when a relationship crosses repositories."""


class RemoteAPIError(GhpmError, RuntimeError):
    def __init__(self, operation: str, cause: object) -> None:
        self.operation = operation
        self.cause = cause
        super().__init__(f"{operation} failed: {cause}")


class TransferPreconditionError(GhpmError):
    """The issue is not eligible for transfer. Reported as a skip, not a failure."""


class PipelineError(GhpmError):
    def __init__(self, state: str, cause: Exception) -> None:
        self.state = state
        self.cause = cause
        super().__init__(f"Issue creation aborted before {state}: {cause}")


class InvalidIssueReferenceError(GhpmError, ValueError):
    """Raised for references that are not 'owner/repo#N', '#N' or 'N'."""


class ConfigurationError(GhpmError):
    """The active context lacks a setting the requested operation needs."""
