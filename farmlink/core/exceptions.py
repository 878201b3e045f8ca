from fastapi import HTTPException, status


class UnauthorizedError(HTTPException):
    def __init__(self, detail: str = "Invalid or missing authentication"):
        super().__init__(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


class ValidationError(HTTPException):
    """Malformed input that passed schema validation but makes no sense."""

    def __init__(self, detail: str):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class BadRequestError(ValidationError):
    pass


class NotFoundError(HTTPException):
    def __init__(self, detail: str = "Not found"):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class LotNotFoundError(NotFoundError):
    def __init__(self, lot_id: str):
        super().__init__(f"Lot {lot_id} not found")


class BidNotFoundError(NotFoundError):
    def __init__(self, bid_id: str):
        super().__init__(f"Bid {bid_id} not found")


class RequestNotFoundError(NotFoundError):
    def __init__(self, request_id: str):
        super().__init__(f"Request {request_id} not found")


class QuoteNotFoundError(NotFoundError):
    def __init__(self, quote_id: str):
        super().__init__(f"Quote {quote_id} not found")


class JobNotFoundError(NotFoundError):
    def __init__(self, job_id: str):
        super().__init__(f"Job {job_id} not found")


class TagNotFoundError(NotFoundError):
    def __init__(self, tag_id: str):
        super().__init__(f"Tag {tag_id} not registered")


class ForbiddenError(HTTPException):
    def __init__(self, detail: str = "Forbidden"):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


class ConflictError(HTTPException):
    """A state guard failed: target not open, offer not pending, duplicate offer.

    Surfaces as 400 to match the public REST contract.
    """

    def __init__(self, detail: str):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class InvalidStateError(ConflictError):
    def __init__(self, entity: str, current: str, expected: str):
        super().__init__(f"{entity} is '{current}', expected '{expected}'")


class TagConflictError(HTTPException):
    def __init__(self, detail: str = "Tag already belongs to another driver"):
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)


class PaymentFailedError(HTTPException):
    def __init__(self, detail: str = "Payment capture failed"):
        super().__init__(status_code=status.HTTP_502_BAD_GATEWAY, detail=detail)


class UpstreamUnavailableError(HTTPException):
    def __init__(self, detail: str = "Upstream service unavailable"):
        super().__init__(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=detail)
