import logging
from contextlib import contextmanager

from fastapi import HTTPException, Security
from fastapi.security.api_key import APIKeyHeader

from ..core.config import get_settings

settings = get_settings()
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)
logger = logging.getLogger(__name__)


def verify_api_key(api_key: str | None = Security(api_key_header)) -> None:
    """
    Simple header-based API key authentication.

    - In dev, if API_AUTH_KEY is not set, auth is skipped.
    - Otherwise, require X-API-Key == API_AUTH_KEY.
    """
    expected = settings.API_AUTH_KEY

    if settings.ENV == "dev" and not expected:
        return

    if not expected:
        raise HTTPException(status_code=401, detail="API key not configured")

    if api_key != expected:
        raise HTTPException(status_code=401, detail="Invalid API key")


@contextmanager
def service_errors(step: str):
    """
    Translate service exceptions into HTTP errors.

    ValueError -> 400, LookupError -> 404, RuntimeError (missing config,
    upstream failures) -> 500. Anything else is logged and reported as 500.
    """
    try:
        yield
    except HTTPException:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except RuntimeError as e:
        logger.warning("Service error: %s", e, extra={"step": step})
        raise HTTPException(status_code=500, detail=str(e))
    except Exception:
        logger.exception("Unhandled error", extra={"step": step})
        raise HTTPException(status_code=500, detail="Internal server error")
