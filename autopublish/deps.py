from typing import Generator
from fastapi import HTTPException, Request

from autopublish.config import settings
from autopublish.db.base import SessionLocal, engine, Base
from autopublish.db import models  # noqa: F401  (registers tables on Base)
from autopublish.services.content_analyzer import HFContentAnalyzer
from autopublish.services.content_generator import HFContentGenerator
from autopublish.services.controller import AutomationController
from autopublish.services.image_generator import HFImageGenerator
from autopublish.services.pipeline import ArticlePipeline
from autopublish.services.publisher import Publisher
from autopublish.services.scheduler import Scheduler
from autopublish.services.wordpress_api import WordPressTarget

def init_db() -> None:
    Base.metadata.create_all(bind=engine)

def get_db() -> Generator:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

def build_controller(session_factory=SessionLocal) -> AutomationController:
    pipeline = ArticlePipeline(HFContentGenerator(), analyzer=HFContentAnalyzer())
    publisher = Publisher(
        session_factory,
        WordPressTarget(),
        image_generator=HFImageGenerator() if settings.image_generation_enabled else None,
    )
    scheduler = Scheduler(
        session_factory,
        pipeline,
        publisher,
        poll_interval_seconds=settings.poll_interval_seconds,
        run_on_start=settings.run_on_start,
    )
    return AutomationController(
        session_factory, scheduler, publisher,
        restart_grace_seconds=settings.restart_grace_seconds,
    )

def get_controller(request: Request) -> AutomationController:
    controller = getattr(request.app.state, "controller", None)
    if controller is None:
        raise HTTPException(503, "Automation controller is not initialized.")
    return controller
