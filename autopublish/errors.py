from typing import Optional


class AutopublishError(Exception):
    """Base class for every error raised by the automation core."""


class ScheduleConfigError(AutopublishError, ValueError):
    """Frequency, time of day or timezone cannot be interpreted."""


class CredentialError(AutopublishError):
    """A WordPress application password cannot be sealed or opened."""


class NotFoundError(AutopublishError):
    def __init__(self, kind: str, ident):
        super().__init__(f"{kind} {ident} not found")
        self.kind = kind
        self.ident = ident


class AuthorizationError(AutopublishError):
    def __init__(self, kind: str, ident, owner_id: str):
        super().__init__(f"{kind} {ident} does not belong to owner {owner_id}")
        self.kind = kind
        self.ident = ident
        self.owner_id = owner_id


class InvalidTransitionError(AutopublishError):
    def __init__(self, from_status, to_status):
        super().__init__(f"Article status cannot move from {from_status} to {to_status}")
        self.from_status = from_status
        self.to_status = to_status


class PipelineError(AutopublishError):
    """A collaborator stage failed; carries which schedule/article and stage."""

    def __init__(
        self,
        message: str,
        schedule_id: Optional[int] = None,
        article_id: Optional[int] = None,
        stage: Optional[str] = None,
    ):
        super().__init__(message)
        self.schedule_id = schedule_id
        self.article_id = article_id
        self.stage = stage

    def __str__(self) -> str:
        context = []
        if self.schedule_id is not None:
            context.append(f"schedule={self.schedule_id}")
        if self.article_id is not None:
            context.append(f"article={self.article_id}")
        if self.stage:
            context.append(f"stage={self.stage}")
        base = super().__str__()
        return f"{base} ({', '.join(context)})" if context else base


class PreconditionError(PipelineError):
    pass


class AnalysisError(PipelineError):
    pass


class GenerationError(PipelineError):
    pass


class ImageError(PipelineError):
    pass


class PublishError(PipelineError):
    pass
