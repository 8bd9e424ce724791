"""Domain errors raised by the request lifecycle and checklist modules.

Every error carries a machine-readable ``kind`` and the HTTP status the lambda
dispatchers answer with. None of them are retried by the caller.
"""


class InspectionError(Exception):
    kind = 'error'
    status_code = 500

    def __init__(self, message, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_body(self):
        body = {'message': self.message, 'error': self.kind}
        body.update(self.details)
        return body


class ValidationFailure(InspectionError):
    kind = 'validation_failure'
    status_code = 400

    def __init__(self, message, errors=None, **details):
        super().__init__(message, **details)
        self.errors = errors or []

    def to_body(self):
        body = super().to_body()
        if self.errors:
            body['errors'] = self.errors
        return body


class Forbidden(InspectionError):
    kind = 'forbidden'
    status_code = 403


class NotFound(InspectionError):
    kind = 'not_found'
    status_code = 404


class InvalidState(InspectionError):
    kind = 'invalid_state'
    status_code = 409


class Conflict(InspectionError):
    kind = 'conflict'
    status_code = 409


def invalid_transition(action, current, expected):
    """InvalidState naming the current status and the statuses the action accepts."""
    if isinstance(expected, (list, tuple, set)):
        expected_txt = ' or '.join(sorted(expected))
    else:
        expected_txt = expected
    return InvalidState(
        f'Request can only be {action} when status is {expected_txt}. Current status: {current}',
        currentStatus=current,
        expectedStatus=expected_txt,
    )
