"""
Error taxonomy for the trainer registry.

Every error raised by the store, the notification dispatcher and the console
derives from RegistryError, which carries a machine-readable ``kind`` and the
HTTP status the API layer answers with.

- Validation: missing required field, rejected before any database call
- Connectivity: transport failure; SchemaMissingError asks for the setup flow
- Conflict: uniqueness violation that automatic retries could not resolve
- Remote rejection: the store refused a write (save/update/delete failed)

AI features never raise; they degrade to None or placeholder text.
"""


class RegistryError(Exception):
    kind = "registry_error"
    status_code = 500
    setup_required = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {
            "detail": self.message,
            "error": self.kind,
            "setup_required": self.setup_required,
        }


class ValidationError(RegistryError):
    kind = "validation"
    status_code = 400


class ConnectivityError(RegistryError):
    kind = "connectivity"
    status_code = 503


class SchemaMissingError(ConnectivityError):
    """The registry tables are not provisioned yet."""
    setup_required = True


class ConflictError(RegistryError):
    kind = "conflict"
    status_code = 409


class EmailLogConflictError(ConflictError):
    pass


class CertificationIdCollision(ConflictError):
    """Raised inside the issuance loop when the derived ID is already taken."""
    pass


class RemoteRejectionError(RegistryError):
    kind = "remote_rejection"
    status_code = 400


class WriteRejectedError(RemoteRejectionError):
    """A write refused by the store; the message carries an operation prefix."""
    prefix = "Write Failed"

    def __init__(self, cause: str, status_code: int = None):
        super().__init__(f"{self.prefix}: {cause}")
        self.cause = cause
        if status_code is not None:
            self.status_code = status_code


class SaveFailedError(WriteRejectedError):
    prefix = "Cloud Save Failed"


class UpdateFailedError(WriteRejectedError):
    prefix = "Institutional Update Failed"


class DeleteFailedError(WriteRejectedError):
    prefix = "Cloud Deletion Failed"


class SyncInProgressError(RegistryError):
    kind = "sync_in_progress"
    status_code = 409

    def __init__(self, message: str = "Another registry operation is still in progress."):
        super().__init__(message)


class AuthenticationError(RegistryError):
    kind = "authentication"
    status_code = 401

    def __init__(self, message: str = "Authentication failed. Invalid credentials."):
        super().__init__(message)
