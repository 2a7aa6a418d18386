from fastapi import HTTPException


class Unauthorized(HTTPException):
    def __init__(self, detail: str = "Invalid authentication credentials"):
        super().__init__(status_code=401, detail=detail)


class Forbidden(HTTPException):
    def __init__(self, detail: str = "Not allowed"):
        super().__init__(status_code=403, detail=detail)


class NotFound(HTTPException):
    def __init__(self, detail: str = "Not found"):
        super().__init__(status_code=404, detail=detail)


class ValidationFailed(HTTPException):
    def __init__(self, detail: str = "Invalid data"):
        super().__init__(status_code=422, detail=detail)


class SellerNotReady(HTTPException):
    """The seller has no payout destination configured yet."""

    def __init__(self, detail: str = "The seller has not configured payouts"):
        super().__init__(status_code=409, detail=detail)


class RateLimited(HTTPException):
    def __init__(self, detail: str = "Too many requests. Please try again later."):
        super().__init__(status_code=429, detail=detail)


class UpstreamFailure(HTTPException):
    def __init__(self, detail: str = "Upstream provider error"):
        super().__init__(status_code=502, detail=detail)
