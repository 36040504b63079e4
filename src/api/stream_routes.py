"""Streaming endpoint for call legs and a view of the live registry."""

from __future__ import annotations

from fastapi import APIRouter, Depends, WebSocket

from api.dependencies import get_gateway
from relay.gateway import ConnectionGateway
from relay.schemas import ConnectionInfo

router = APIRouter(prefix="/relay", tags=["relay"])


@router.websocket("/stream")
async def relay_stream(
    websocket: WebSocket,
    gateway: ConnectionGateway = Depends(get_gateway),
) -> None:
    await gateway.serve(websocket)


@router.get("/connections", response_model=list[ConnectionInfo])
async def list_connections(
    gateway: ConnectionGateway = Depends(get_gateway),
) -> list[ConnectionInfo]:
    entries = await gateway.registry.list_entries()
    return [
        ConnectionInfo(
            connection_id=entry.connection_id,
            participant_role=entry.participant_role,
            room_id=entry.room_id,
            state=entry.state.value,
            buffered_bytes=len(entry.audio_buffer),
            dispatch_in_flight=entry.dispatch_in_flight,
            connected_at=entry.connected_at,
        )
        for entry in entries
    ]
