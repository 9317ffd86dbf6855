class DocumentServiceError(Exception):
    """Base class for errors raised by the document core.

    Routers never translate these by hand; ``main`` registers a handler that
    renders them as the standard error envelope with ``status_code``.
    """

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(DocumentServiceError):
    status_code = 404


class BadRequestError(DocumentServiceError):
    status_code = 400


class InvalidTransitionError(BadRequestError):
    def __init__(self, current: str, target: str):
        super().__init__(f"Cannot move document from '{current}' to '{target}'")
        self.current = current
        self.target = target


class PayloadTooLargeError(DocumentServiceError):
    status_code = 413
