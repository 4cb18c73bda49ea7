from fastapi import HTTPException


class StoreError(ValueError):
    """Base class for user-visible store errors."""


class StoreValidationError(StoreError):
    pass


class StoreNotFoundError(StoreError):
    pass


class StoreConflictError(StoreError):
    pass


class StorePermissionError(StoreError):
    pass


def raise_store_http_error(exc: StoreError) -> None:
    if isinstance(exc, StoreNotFoundError):
        raise HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, StorePermissionError):
        raise HTTPException(status_code=403, detail=str(exc))
    if isinstance(exc, StoreConflictError):
        raise HTTPException(status_code=409, detail=str(exc))
    raise HTTPException(status_code=400, detail=str(exc))
