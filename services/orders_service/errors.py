"""Error taxonomy for order and credit operations.

Service functions raise these directly (they are ``HTTPException`` subclasses),
so routers never translate errors. ``DependencyFailure`` is the exception: it
marks a failed secondary effect and is always caught, logged and reported as a
warning next to the primary result.
"""

from fastapi import HTTPException, status


class ValidationError(HTTPException):
    """Bad precondition; rejected before any write."""

    def __init__(self, detail: str):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class ConflictError(HTTPException):
    """State changed between load and write."""

    def __init__(self, detail: str = "Order was modified concurrently, please retry"):
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)


class IntegrityViolation(HTTPException):
    """Computed totals do not reconcile (e.g. split amounts vs order total)."""

    def __init__(self, detail: str):
        super().__init__(status_code=422, detail=detail)


class DependencyFailure(Exception):
    """A secondary effect (commission, bookkeeping) failed."""

    def __init__(self, dependency: str, message: str):
        self.dependency = dependency
        self.message = message
        super().__init__(f"{dependency}: {message}")


def not_found(what: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND, detail=f"{what} not found"
    )
