"""Translate service errors into HTTP responses."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from fastapi import HTTPException, status
from loguru import logger

from superfan_api.domain.errors import EconomyError


def as_http_exception(exc: EconomyError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.as_detail())


@contextmanager
def economy_errors() -> Iterator[None]:
    """Re-raise economy errors and argument errors as ``HTTPException``."""

    try:
        yield
    except EconomyError as exc:
        if exc.status_code >= 500:
            logger.warning("Economy operation failed", code=exc.code, error=str(exc))
        raise as_http_exception(exc) from exc
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": "invalid_request", "message": str(exc)},
        ) from exc


__all__ = ["as_http_exception", "economy_errors"]
