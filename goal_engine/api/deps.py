"""
Shared route dependencies
"""

from contextlib import contextmanager
from typing import Iterator

from fastapi import HTTPException, Request

from goal_engine.domain.services.goal_service import GoalService


def get_goal_service(request: Request) -> GoalService:
    service = getattr(request.app.state, "goal_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Goal service not initialized")
    return service


@contextmanager
def domain_errors() -> Iterator[None]:
    """Translate lookup failures to 404 and rule violations to 422"""
    try:
        yield
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
