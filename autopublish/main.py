import logging
from fastapi import FastAPI
from autopublish.config import settings
from autopublish.deps import init_db, build_controller

# Routers
from autopublish.routers import sites, schedules, articles, automation

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Auto-Publishing API", version="0.1.0")

@app.on_event("startup")
def _startup():
    init_db()
    app.state.controller = build_controller()
    try:
        app.state.controller.initialize()
    except Exception:
        # the API stays up; /automation/initialize can be retried
        logger.exception("[startup] automation initialization failed")

@app.on_event("shutdown")
def _shutdown():
    controller = getattr(app.state, "controller", None)
    if controller is not None:
        controller.stop()

@app.get("/")
def root():
    return {"message": "Auto-Publishing API is running!"}

# Mount routes
app.include_router(sites.router)        # /sites/*
app.include_router(schedules.router)    # /schedules/*
app.include_router(articles.router)     # /articles/*
app.include_router(automation.router)   # /automation/*
