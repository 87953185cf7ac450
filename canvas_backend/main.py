"""
Canvas Backend - FastAPI Application

Persistence service for the canvas engine. It provides:
- REST API for entities and connections, with placement and connection
  rules re-checked on every create
- Advisory suggestions and JSON/SVG export of the current structure
- File save/open of the structure
- WebSocket endpoint broadcasting `structure_updated` on every change
- CORS configuration for local frontend development
"""
import asyncio
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Query, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from pydantic import BaseModel

from entity_canvas.errors import ExportError, NotFoundError, RuleViolationError
from entity_canvas.export import RenderSurface, StructureExporter
from entity_canvas.logging import get_logger
from entity_canvas.models import CreateConnectionRequest, CreateEntityRequest, UpdateEntityRequest
from entity_canvas.suggestions import build_suggestions

from .repository import StructureRepository
from .websocket_manager import WebSocketManager

logger = get_logger("backend")

DATA_FILE_ENV = "CANVAS_BACKEND_DATA_FILE"
CORS_ORIGINS = ["http://localhost:5173", "http://localhost:3000", "http://127.0.0.1:5173"]

MEDIA_TYPES = {"json": "application/json", "svg": "image/svg+xml"}


class OpenStructureRequest(BaseModel):
    file_path: str


class SaveStructureRequest(BaseModel):
    file_path: Optional[str] = None


def _rule_error(e: RuleViolationError) -> HTTPException:
    return HTTPException(status_code=400, detail={
        "message": str(e),
        "violations": [v.to_dict() for v in e.violations],
    })


def create_app(
    repository: Optional[StructureRepository] = None,
    ws_manager: Optional[WebSocketManager] = None,
    data_file: Optional[str] = None,
) -> FastAPI:
    """Build the application around a repository (a fresh one by default)."""
    repository = repository or StructureRepository()
    ws_manager = ws_manager or WebSocketManager()
    data_file = data_file or os.environ.get(DATA_FILE_ENV)

    # --- Async change notification ---
    # Bridge between sync repository callbacks and async WebSocket broadcasts

    change_event = asyncio.Event()

    async def change_broadcaster():
        while True:
            await change_event.wait()
            change_event.clear()
            structure = repository.structure
            await ws_manager.notify_structure_updated(
                structure.id, len(structure.entities), len(structure.connections)
            )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        repository.on_change(change_event.set)
        if data_file and os.path.exists(data_file):
            repository.open_structure(data_file)

        broadcaster_task = asyncio.create_task(change_broadcaster())
        yield
        broadcaster_task.cancel()
        try:
            await broadcaster_task
        except asyncio.CancelledError:
            pass
        await ws_manager.close_all()

    app = FastAPI(
        title="Entity Canvas API",
        description="Persistence service for the entity structure canvas",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.repository = repository
    app.state.ws_manager = ws_manager

    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # --- Health Check ---

    @app.get("/api/health")
    async def health_check():
        return {"status": "ok", "connections": ws_manager.connection_count}

    # --- Structure State ---

    @app.get("/api/structure")
    async def get_structure():
        """Get the current structure, including file path and dirty flag."""
        return repository.get_state()

    @app.post("/api/structure/open")
    async def open_structure(request: OpenStructureRequest):
        try:
            structure = repository.open_structure(request.file_path)
            return {"success": True, "structure": structure.to_json_dict(), "file_path": str(repository.file_path)}
        except FileNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e))
        except Exception as e:
            raise HTTPException(status_code=400, detail=f"Failed to open structure: {e}")

    @app.post("/api/structure/save")
    async def save_structure(request: SaveStructureRequest):
        try:
            path = repository.save_structure(request.file_path)
            return {"success": True, "file_path": str(path)}
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except OSError as e:
            raise HTTPException(status_code=500, detail=f"Failed to save: {e}")

    # --- Entities ---

    @app.get("/api/entities")
    async def list_entities():
        return [e.to_json_dict() for e in repository.list_entities()]

    @app.post("/api/entities")
    async def create_entity(request: CreateEntityRequest):
        try:
            entity = repository.add_entity(
                kind=request.kind,
                name=request.name,
                position=request.position,
                properties=request.properties,
            )
        except RuleViolationError as e:
            raise _rule_error(e)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return entity.to_json_dict()

    @app.get("/api/entities/{entity_id}")
    async def get_entity(entity_id: str):
        try:
            return repository.get_entity(entity_id).to_json_dict()
        except NotFoundError:
            raise HTTPException(status_code=404, detail="Entity not found")

    @app.patch("/api/entities/{entity_id}")
    async def update_entity(entity_id: str, request: UpdateEntityRequest):
        try:
            entity = repository.update_entity(
                entity_id,
                name=request.name,
                position=request.position,
                properties=request.properties,
            )
        except NotFoundError:
            raise HTTPException(status_code=404, detail="Entity not found")
        except RuleViolationError as e:
            raise _rule_error(e)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return entity.to_json_dict()

    @app.delete("/api/entities/{entity_id}")
    async def delete_entity(entity_id: str):
        try:
            repository.delete_entity(entity_id)
        except NotFoundError:
            raise HTTPException(status_code=404, detail="Entity not found")
        return {"success": True}

    # --- Connections ---

    @app.get("/api/connections")
    async def list_connections():
        return [c.to_json_dict() for c in repository.list_connections()]

    @app.post("/api/connections")
    async def create_connection(request: CreateConnectionRequest):
        try:
            connection = repository.add_connection(request.source, request.target, request.label)
        except NotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e))
        except RuleViolationError as e:
            raise _rule_error(e)
        return connection.to_json_dict()

    @app.delete("/api/connections/{connection_id}")
    async def delete_connection(connection_id: str):
        try:
            repository.delete_connection(connection_id)
        except NotFoundError:
            raise HTTPException(status_code=404, detail="Connection not found")
        return {"success": True}

    # --- Advice and Export ---

    @app.get("/api/suggestions")
    async def get_suggestions():
        suggestions = build_suggestions(repository.list_entities(), repository.list_connections())
        return [s.to_json_dict() for s in suggestions]

    @app.get("/api/export")
    async def export_structure(format: str = Query(default="json")):
        structure = repository.structure
        exporter = StructureExporter(name=structure.name)
        surface = RenderSurface(grid_size=structure.metadata.grid_size, show_grid=structure.metadata.show_grid)
        try:
            data = await exporter.export(structure.entities, structure.connections, surface, format)
        except ExportError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return Response(content=data, media_type=MEDIA_TYPES[format.lower()])

    # --- WebSocket ---

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        """Clients connect here to receive structure_updated events."""
        await ws_manager.connect(websocket)
        try:
            while True:
                data = await websocket.receive_text()
                if data == "ping":
                    await ws_manager.reply(websocket, {"type": "pong"})
        except WebSocketDisconnect:
            await ws_manager.disconnect(websocket)

    return app


app = create_app()


def run():
    """Console entry point: serve the API with uvicorn."""
    import uvicorn
    uvicorn.run(app, host="127.0.0.1", port=8765)


if __name__ == "__main__":
    run()
