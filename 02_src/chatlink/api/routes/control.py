"""Control API routes."""

from typing import Protocol

from fastapi import APIRouter, HTTPException

from ...app import IApplication
from .common import StatusResponse


class ISimControl(Protocol):
    """What the control routes need from the simulator."""

    async def start(self) -> None:
        ...

    async def stop(self) -> None:
        ...


# Global SIM instance (will be set by main app)
_sim_instance: ISimControl | None = None


def set_sim_instance(sim: ISimControl | None) -> None:
    """Set the global SIM instance."""
    global _sim_instance
    _sim_instance = sim


def get_sim_instance() -> ISimControl | None:
    """Get the global SIM instance."""
    return _sim_instance


def create_control_router(app: IApplication) -> APIRouter:
    """Create control router."""
    router = APIRouter(prefix="/api/control", tags=["control"])

    @router.post("/reset", response_model=StatusResponse)
    async def reset_system() -> dict:
        """Disconnect every session and clear stored data."""
        try:
            await app.reset()
            return {"status": "ok"}
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    @router.post("/sim/start", response_model=StatusResponse)
    async def start_sim() -> dict:
        """Start the scripted two-user scenario."""
        if _sim_instance is None:
            raise HTTPException(status_code=404, detail="SIM not configured")
        try:
            await _sim_instance.start()
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))
        return {"status": "ok"}

    @router.post("/sim/stop", response_model=StatusResponse)
    async def stop_sim() -> dict:
        """Stop the scenario."""
        if _sim_instance is None:
            raise HTTPException(status_code=404, detail="SIM not configured")
        try:
            await _sim_instance.stop()
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))
        return {"status": "ok"}

    return router
