"""
Error taxonomy shared by the services and both blueprints.

Every error carries an HTTP status so the JSON API can answer with
``{"error": message}`` and the web pages can flash the same message.
"""


class PosError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(PosError):
    """Bad form/JSON input. Raised before anything is written."""

    status_code = 400


class NotFoundError(PosError):
    status_code = 404

    def __init__(self, entity: str, entity_id=None):
        if entity_id is not None:
            message = f"{entity} {entity_id} not found"
        else:
            message = f"{entity} not found"
        super().__init__(message)
        self.entity = entity
        self.entity_id = entity_id


class ConflictError(PosError):
    status_code = 409


class TableStateError(ConflictError):
    """The table is not in a state that allows the requested action."""


class BackendError(PosError):
    """A storage call failed. The surrounding transaction was rolled back."""

    status_code = 502


class AuthTimeoutError(PosError):
    status_code = 401
