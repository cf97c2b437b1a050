"""Error taxonomy for the academic records subsystem.

Fatal errors (raised, abort the operation):
    NotFound, Unauthorized, ValidationError, MarkInitializationFailed

Non-fatal notices (returned on results, never raised by the engine):
    PropagationFailure, ConsistencyRepairNeeded

status_code follows the HTTP status the hosting API is expected to map to.
"""


class AcademicRecordsError(Exception):
    status_code = 500

    def __init__(self, message, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self):
        payload = {"error": type(self).__name__, "msg": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class NotFound(AcademicRecordsError):
    status_code = 404


class StudentNotInClass(NotFound):
    pass


class ExamNotInClass(NotFound):
    pass


class Unauthorized(AcademicRecordsError):
    status_code = 403


class SubjectNotAssignedToCaller(Unauthorized):
    pass


class ValidationError(AcademicRecordsError):
    status_code = 400


class MarksOutOfRange(ValidationError):
    pass


class MarkInitializationFailed(AcademicRecordsError):
    """Seeding mark records for an exam failed; exam creation is rolled back."""

    status_code = 500


class PropagationFailure(AcademicRecordsError):
    """A fan-out step to exam or mark copies failed after the canonical write.

    Correctable with sync_assignments().
    """

    status_code = 200


class ConsistencyRepairNeeded(AcademicRecordsError):
    """Reconciliation found drifted copies and corrected them."""

    status_code = 200
