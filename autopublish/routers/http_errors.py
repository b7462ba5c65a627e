from fastapi import HTTPException

from autopublish.errors import (
    AnalysisError, AuthorizationError, AutopublishError, GenerationError, InvalidTransitionError,
    NotFoundError, PreconditionError, PublishError, ScheduleConfigError,
)

_STATUS = (
    (NotFoundError, 404),
    (AuthorizationError, 403),
    (ScheduleConfigError, 422),
    (PreconditionError, 409),
    (InvalidTransitionError, 409),
    (AnalysisError, 502),
    (GenerationError, 502),
    (PublishError, 502),
)

def to_http(e: AutopublishError) -> HTTPException:
    for cls, status in _STATUS:
        if isinstance(e, cls):
            return HTTPException(status, str(e))
    return HTTPException(500, str(e))
