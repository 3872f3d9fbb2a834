"""Command Routes - HTTP surface over the CommandBus (execute, undo, redo, history).

Invariants:
    - Routes never contain business logic: each call is one bus method
    - Status code comes from the failing ErrorRecord's code (http_status); the body is
      CommandResult.to_response(), so High/Critical details never reach the client
    - The bus lives on app.state (one per process); tests swap it via dependency_overrides
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse

from command_core.core.command import CommandMetadata, CommandResult
from command_core.schemas.commands import (
    CommandRequest, CommandTypesResponse, HistoryResponse,
)
from command_core.services.command_bus import CommandBus

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1", tags=["commands"])


def get_command_bus(request: Request) -> CommandBus:
    bus = getattr(request.app.state, "command_bus", None)
    if bus is None:
        raise HTTPException(
            status.HTTP_503_SERVICE_UNAVAILABLE, detail="Command bus not initialized",
        )
    return bus


def _respond(result: CommandResult) -> JSONResponse:
    code = status.HTTP_200_OK if result.success else result.error.http_status
    return JSONResponse(status_code=code, content=result.to_response())


@router.get("/commands", response_model=CommandTypesResponse)
async def list_command_types(bus: CommandBus = Depends(get_command_bus)):
    return {"command_types": bus.command_types}


@router.post("/commands/{command_type}")
async def execute_command(
    command_type: str,
    body: CommandRequest,
    bus: CommandBus = Depends(get_command_bus),
):
    metadata = CommandMetadata.create(
        actor_id=body.metadata.actor_id,
        correlation_id=body.metadata.correlation_id,
    )
    result = await bus.execute(command_type, body.input, metadata)
    return _respond(result)


@router.post("/history/undo")
async def undo_last(bus: CommandBus = Depends(get_command_bus)):
    return _respond(await bus.undo())


@router.post("/history/redo")
async def redo_last(bus: CommandBus = Depends(get_command_bus)):
    return _respond(await bus.redo())


@router.get("/history", response_model=HistoryResponse)
async def get_history(bus: CommandBus = Depends(get_command_bus)):
    return {"entries": bus.get_history_snapshot(), "stats": bus.history.stats()}
