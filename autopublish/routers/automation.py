from fastapi import APIRouter, Depends
from typing import Dict, Any
from autopublish.deps import get_controller
from autopublish.services.controller import AutomationController

router = APIRouter(prefix="/automation", tags=["automation"])

@router.post("/initialize")
def initialize(controller: AutomationController = Depends(get_controller)) -> Dict[str, Any]:
    return controller.initialize()

@router.post("/start")
def start(controller: AutomationController = Depends(get_controller)) -> Dict[str, Any]:
    return controller.start()

@router.post("/stop")
def stop(controller: AutomationController = Depends(get_controller)) -> Dict[str, Any]:
    return controller.stop()

@router.post("/restart")
def restart(controller: AutomationController = Depends(get_controller)) -> Dict[str, Any]:
    return controller.restart()

@router.post("/run")
def run_now(controller: AutomationController = Depends(get_controller)) -> Dict[str, Any]:
    # same code path as a timer tick
    return controller.trigger_manual_processing()

@router.post("/sweep")
def sweep(controller: AutomationController = Depends(get_controller)) -> Dict[str, Any]:
    return {"status": "ok", "published": controller.publish_ready_articles()}

@router.get("/status")
def status(controller: AutomationController = Depends(get_controller)) -> Dict[str, Any]:
    return controller.status()
