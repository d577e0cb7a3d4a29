class ApplicationError(Exception):
    """Base class for errors that end a request with an HTTP error status.

    Errors raised after the review envelope was parsed carry the review uid so
    that the final log line for the request can still be correlated.
    """

    status_code = 500

    def __init__(self, message, admission_id=None):
        super().__init__(message)
        self.admission_id = admission_id


class BadRequest(ApplicationError):
    status_code = 400


class MethodNotAllowed(ApplicationError):
    status_code = 405


class UnsupportedMediaType(BadRequest):
    pass


class UnreadableBody(BadRequest):
    pass


class MalformedEnvelope(BadRequest):
    pass


class AdmissionFault(ApplicationError):
    pass


class EncodingFault(ApplicationError):
    pass


class DecodeError(ValueError):
    pass


class EncodeError(ValueError):
    pass


class AdmissionDenied(Exception):
    """Raised by a decision function to reject the object under review.

    This is not a fault: the request is answered with status 200 and
    ``allowed: false``, using the exception text as the reason.
    """
