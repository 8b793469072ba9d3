"""
Workflow Errors
===============
Error taxonomy shared by the ledgers and workflows.

Every error is a recoverable outcome for the caller: the transition that
raised it has been rolled back and nothing was written.
"""


class WorkflowError(Exception):
    """Base class for every error the engine reports to its callers."""

    code = 'workflow_error'
    status_code = 400

    def __init__(self, message='', **context):
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self):
        return self.message


class NotFound(WorkflowError):
    """A referenced request, loan, return or asset does not exist."""

    code = 'not_found'
    status_code = 404


class InvalidTransition(WorkflowError):
    """The document's current status does not permit the operation."""

    code = 'invalid_transition'
    status_code = 409


class ValidationError(WorkflowError):
    """Malformed input: bad counts, negative quantities, missing fields."""

    code = 'validation_error'
    status_code = 400


class ConflictError(WorkflowError):
    """A concurrent change was detected through a version mismatch."""

    code = 'conflict'
    status_code = 409


class PermissionDenied(WorkflowError):
    """The acting user may not perform this transition."""

    code = 'permission_denied'
    status_code = 403


def from_django_validation_error(exc):
    """Convert ``django.core.exceptions.ValidationError`` into ours."""
    if hasattr(exc, 'message_dict'):
        messages = [
            f"{field}: {msg}" if field != '__all__' else msg
            for field, msgs in exc.message_dict.items()
            for msg in msgs
        ]
    else:
        messages = list(exc.messages)
    return ValidationError('; '.join(messages))
