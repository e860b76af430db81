from fastapi import HTTPException, status

class BaseAppException(HTTPException):
    def __init__(self, status_code: int, detail: str):
        super().__init__(status_code=status_code, detail=detail)

class ValidationError(BaseAppException):
    def __init__(self, detail: str = "Validation error"):
        super().__init__(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=detail)

class NotFoundError(BaseAppException):
    def __init__(self, detail: str = "Resource not found"):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)

class ConflictError(BaseAppException):
    def __init__(self, detail: str = "Resource is busy"):
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)

class SyncInProgressError(ConflictError):
    def __init__(self, detail: str = "A sync job is already running"):
        super().__init__(detail=detail)


# Non-HTTP errors raised inside the sync pipeline

class SyncError(Exception):
    """A required sync phase failed"""

class SyncTimeoutError(SyncError):
    """A sync attempt exceeded its wall-clock budget"""

class CacheStoreError(Exception):
    """The cache backend could not complete a read or write"""
