class PortalError(RuntimeError):
    code = "portal_error"

    def __init__(self, message: str, status_code: int = 500) -> None:
        super().__init__(message)
        self.status_code = status_code


class ValidationError(PortalError):
    code = "validation_error"

    def __init__(self, message: str) -> None:
        super().__init__(message, status_code=400)


class MissingIdentifier(ValidationError):
    code = "missing_identifier"

    def __init__(self, message: str = "userId or phone is required") -> None:
        super().__init__(message)


class InvalidPayload(ValidationError):
    code = "invalid_payload"


class NotFound(PortalError):
    code = "not_found"

    def __init__(self, message: str = "User not found") -> None:
        super().__init__(message, status_code=404)


class StorageError(PortalError):
    code = "storage_error"

    def __init__(self, message: str = "Internal server error") -> None:
        super().__init__(message, status_code=500)


class TransportTimeout(PortalError):
    code = "transport_timeout"

    def __init__(self, message: str = "Update was not acknowledged in time") -> None:
        super().__init__(message, status_code=504)
