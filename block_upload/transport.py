"""
HTTP transport for browser-driven uploads.

The client splits the file itself and calls initialize, then stage-chunk once
per chunk, then commit with the ordered block ids. Server bootstrapping
(uvicorn, auth, CORS) is left to the embedding application; create_app()
only wires the router, the store and the error handlers.
"""

from fastapi import APIRouter, Depends, FastAPI, File, Form, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from block_upload.block_ids import block_id_for, check_ascending
from block_upload.errors import BackendError, BackendUnavailable, InvalidConfiguration
from block_upload.log import get_logger
from block_upload.store import BlockStore

router = APIRouter()


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------

class InitializeIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    destination_name: str = Field(alias="destinationName", min_length=1)
    correlation_id: str = Field(alias="correlationId", min_length=1)


class InitializeOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ack: bool = True
    destination_name: str = Field(alias="destinationName")


class StageChunkOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    block_id: str = Field(alias="blockId")


class CommitIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    destination_name: str = Field(alias="destinationName", min_length=1)
    block_ids: list[str] = Field(alias="blockIds", min_length=1)


class CommitOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    final_object_url: str = Field(alias="finalObjectUrl")


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

def get_store(request: Request) -> BlockStore:
    return request.app.state.block_store


def get_container_name(request: Request) -> str:
    return request.app.state.container_name


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

@router.post("/initialize", response_model=InitializeOut)
def initialize(
    payload: InitializeIn,
    store: BlockStore = Depends(get_store),
    container_name: str = Depends(get_container_name),
) -> InitializeOut:
    store.ensure_container(container_name)
    get_logger().info(
        f"Initialized '{payload.destination_name}' (correlation {payload.correlation_id})."
    )
    return InitializeOut(destination_name=payload.destination_name)


@router.post("/stage-chunk", response_model=StageChunkOut)
def stage_chunk(
    chunk: UploadFile = File(...),
    index: int = Form(...),
    destination_name: str = Form(..., alias="destinationName", min_length=1),
    correlation_id: str = Form(..., alias="correlationId", min_length=1),
    store: BlockStore = Depends(get_store),
    container_name: str = Depends(get_container_name),
) -> StageChunkOut:
    block_id = block_id_for(index)
    data = chunk.file.read()
    if not data:
        raise InvalidConfiguration(f"Chunk {index} payload is empty.")

    store.stage_block(container_name, destination_name, block_id, data)
    get_logger().debug(
        f"Staged chunk {index} ({len(data):,} bytes) for '{destination_name}' "
        f"(correlation {correlation_id})."
    )
    return StageChunkOut(block_id=block_id)


@router.post("/commit", response_model=CommitOut)
def commit(
    payload: CommitIn,
    store: BlockStore = Depends(get_store),
    container_name: str = Depends(get_container_name),
) -> CommitOut:
    block_ids = check_ascending(payload.block_ids)
    url = store.commit(container_name, payload.destination_name, block_ids)
    get_logger().info(f"Committed '{payload.destination_name}' ({len(block_ids)} block(s)).")
    return CommitOut(final_object_url=url)


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------

def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def create_app(store: BlockStore, container_name: str) -> FastAPI:
    app = FastAPI(title="block_upload")
    app.state.block_store = store
    app.state.container_name = container_name
    app.include_router(router)

    logger = get_logger()

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        problems = [
            f"{'.'.join(str(part) for part in err.get('loc', ())[1:])}: {err.get('msg')}"
            for err in exc.errors()
        ]
        return _error(400, "; ".join(problems) or "Invalid request.")

    @app.exception_handler(InvalidConfiguration)
    async def invalid_configuration_handler(request: Request, exc: InvalidConfiguration):
        return _error(400, exc.message)

    @app.exception_handler(BackendUnavailable)
    async def backend_unavailable_handler(request: Request, exc: BackendUnavailable):
        logger.warning(f"{request.url.path}: backend unavailable: {exc.message}")
        return _error(503, exc.message)

    @app.exception_handler(BackendError)
    async def backend_error_handler(request: Request, exc: BackendError):
        logger.error(f"{request.url.path}: {exc.kind}: {exc.message}")
        return _error(502, exc.message)

    return app
