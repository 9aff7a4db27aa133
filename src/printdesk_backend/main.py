from __future__ import annotations

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from threading import Lock
from typing import Any, Dict, List, Optional
from uuid import uuid4

from fastapi import Depends, FastAPI, File, Form, Request, UploadFile, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from .configuration import get_settings
from .database import PrintDeskDatabase
from .errors import (
    ConfigurationNotFound,
    DuplicateConfiguration,
    InvalidTransition,
    NotFound,
    NotInitialized,
    PrintDeskError,
    StorageError,
    UnsupportedMediaType,
    ValidationError,
)
from .job_manager import Attachment, PrintJobManager, PrintJobSubmission
from .models import (
    PricingConfig,
    PricingConfigChange,
    PricingConfigCreate,
    PricingConfigFields,
    PrintJobDetail,
    PrintJobSummary,
    Shop,
    ShopCreate,
    StatusUpdateRequest,
)
from .notifications import WebSocketRoomHub, print_job_room, shop_room
from .pricing import PricingService
from .records import ShopRecord
from .s3_service import FileStore, S3FileStore
from .utils import utcnow

logger = logging.getLogger(__name__)

ERROR_STATUS_CODES: Dict[type, int] = {
    ValidationError: 400,
    NotFound: 404,
    DuplicateConfiguration: 409,
    InvalidTransition: 409,
    UnsupportedMediaType: 415,
    ConfigurationNotFound: 422,
    StorageError: 502,
    NotInitialized: 503,
}

hub = WebSocketRoomHub()

_database: Optional[PrintDeskDatabase] = None
_job_manager: Optional[PrintJobManager] = None
_lock = Lock()


def get_database() -> PrintDeskDatabase:
    global _database
    with _lock:
        if _database is None:
            _database = PrintDeskDatabase(Path(get_settings().database.path))
        return _database


def get_file_store() -> FileStore:
    settings = get_settings()
    return S3FileStore(bucket=settings.storage.bucket, region=settings.storage.region)


def get_job_manager() -> PrintJobManager:
    """Build the engine once, after startup has bound the notification hub."""
    global _job_manager
    broadcaster = hub.require_ready()
    database = get_database()
    with _lock:
        if _job_manager is None:
            _job_manager = PrintJobManager.from_settings(get_settings(), database, get_file_store(), broadcaster)
        return _job_manager


def get_pricing_service(database: PrintDeskDatabase = Depends(get_database)) -> PricingService:
    return PricingService(database)


def get_hub() -> WebSocketRoomHub:
    return hub


@asynccontextmanager
async def lifespan(app: FastAPI):
    hub.bind(asyncio.get_running_loop())
    try:
        yield
    finally:
        hub.unbind()
        if _job_manager is not None:
            _job_manager.shutdown()


app = FastAPI(title="PrintDesk API", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(get_settings().cors.allow_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(PrintDeskError)
async def handle_printdesk_error(request: Request, exc: PrintDeskError) -> JSONResponse:
    status_code = next((code for cls, code in ERROR_STATUS_CODES.items() if isinstance(exc, cls)), 500)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "error": type(exc).__name__, **exc.details},
    )


@app.get("/healthz")
def healthcheck() -> Dict[str, str]:
    return {"status": "ok"}


@app.post("/shops", response_model=Shop, status_code=201)
def create_shop(payload: ShopCreate, database: PrintDeskDatabase = Depends(get_database)) -> Shop:
    shop = ShopRecord(id=str(uuid4()), name=payload.name, created_at=utcnow())
    database.insert_shop(shop)
    logger.info(f"Registered shop {shop.id}")
    return shop.to_model()


@app.get("/shops/{shop_id}", response_model=Shop)
def get_shop(shop_id: str, database: PrintDeskDatabase = Depends(get_database)) -> Shop:
    shop = database.get_shop(shop_id)
    if shop is None:
        raise NotFound("Shop", shop_id)
    return shop.to_model()


@app.post("/pricing-config", response_model=PricingConfigChange, status_code=201)
def create_pricing_config(
    payload: PricingConfigCreate, pricing: PricingService = Depends(get_pricing_service)
) -> PricingConfigChange:
    created, all_configs = pricing.create_config(
        payload.shop_id, payload.paper_type, payload.print_type, payload.single_sided, payload.double_sided
    )
    return PricingConfigChange(
        pricing_config=created.to_model(),
        all_configurations=[config.to_model() for config in all_configs],
    )


@app.get("/pricing-config/{shop_id}", response_model=List[PricingConfig])
def list_pricing_configs(shop_id: str, pricing: PricingService = Depends(get_pricing_service)) -> List[PricingConfig]:
    return [config.to_model() for config in pricing.list_configs(shop_id)]


@app.get("/pricing-config-by-id/{config_id}", response_model=PricingConfig)
def get_pricing_config(config_id: str, pricing: PricingService = Depends(get_pricing_service)) -> PricingConfig:
    return pricing.get_config(config_id).to_model()


@app.put("/pricing-config/{config_id}", response_model=PricingConfigChange)
def update_pricing_config(
    config_id: str, payload: PricingConfigFields, pricing: PricingService = Depends(get_pricing_service)
) -> PricingConfigChange:
    updated, all_configs = pricing.update_config(
        config_id, payload.paper_type, payload.print_type, payload.single_sided, payload.double_sided
    )
    return PricingConfigChange(
        pricing_config=updated.to_model(),
        all_configurations=[config.to_model() for config in all_configs],
    )


@app.delete("/pricing-config/{config_id}", response_model=PricingConfig)
def delete_pricing_config(config_id: str, pricing: PricingService = Depends(get_pricing_service)) -> PricingConfig:
    return pricing.delete_config(config_id).to_model()


async def _read_attachment(upload: UploadFile) -> Attachment:
    data = await upload.read()
    await upload.close()
    return Attachment(
        file_name=upload.filename or "document",
        content_type=upload.content_type or "application/octet-stream",
        data=data,
    )


@app.post("/print-jobs", response_model=PrintJobDetail, status_code=201)
async def create_print_job(
    shop_id: str = Form(""),
    copies: Optional[str] = Form(None),
    print_type: Optional[str] = Form(None),
    paper_type: Optional[str] = Form(None),
    print_side: Optional[str] = Form(None),
    specific_pages: str = Form(""),
    customer_name: str = Form(""),
    customer_phone: str = Form(""),
    customer_email: str = Form(""),
    files: Optional[List[UploadFile]] = File(None),
    manager: PrintJobManager = Depends(get_job_manager),
) -> PrintJobDetail:
    attachments = [await _read_attachment(upload) for upload in files or []]
    submission = PrintJobSubmission(
        shop_id=shop_id,
        copies=copies,
        attachments=attachments,
        print_type=print_type,
        paper_type=paper_type,
        print_side=print_side,
        specific_pages=specific_pages,
        customer_name=customer_name,
        customer_phone=customer_phone,
        customer_email=customer_email,
    )
    return await run_in_threadpool(manager.submit, submission)


@app.patch("/print-jobs/{job_id}/status", response_model=PrintJobDetail)
def update_print_job_status(
    job_id: str, payload: StatusUpdateRequest, manager: PrintJobManager = Depends(get_job_manager)
) -> PrintJobDetail:
    return manager.update_status(job_id, payload.status)


@app.get("/print-jobs/token/{token_number}", response_model=PrintJobSummary)
def get_print_job_by_token(token_number: str, manager: PrintJobManager = Depends(get_job_manager)) -> PrintJobSummary:
    return manager.get_job_by_token(token_number)


@app.get("/print-jobs/{job_id}", response_model=PrintJobDetail)
def get_print_job(job_id: str, manager: PrintJobManager = Depends(get_job_manager)) -> PrintJobDetail:
    return manager.get_job(job_id)


@app.get("/shops/{shop_id}/print-jobs", response_model=List[PrintJobDetail])
def list_shop_print_jobs(
    shop_id: str, status: Optional[str] = None, manager: PrintJobManager = Depends(get_job_manager)
) -> List[PrintJobDetail]:
    return manager.list_jobs(shop_id, status)


def _room_for(message: Dict[str, Any]) -> Optional[str]:
    action = message.get("action", "")
    if action in ("joinShopRoom", "leaveShopRoom") and message.get("shop_id"):
        return shop_room(str(message["shop_id"]))
    if action in ("joinPrintJobRoom", "leavePrintJobRoom") and message.get("job_id"):
        return print_job_room(str(message["job_id"]))
    return None


@app.websocket("/ws")
async def notifications_socket(websocket: WebSocket, rooms: WebSocketRoomHub = Depends(get_hub)) -> None:
    await websocket.accept()
    try:
        while True:
            try:
                message = json.loads(await websocket.receive_text())
            except json.JSONDecodeError:
                await websocket.send_json({"event": "error", "data": {"detail": "Invalid JSON message"}})
                continue

            room = _room_for(message) if isinstance(message, dict) else None
            if room is None:
                await websocket.send_json({"event": "error", "data": {"detail": "Unknown action or missing id"}})
                continue

            if message["action"].startswith("join"):
                rooms.join(room, websocket)
                await websocket.send_json({"event": "joined", "data": {"room": room}})
            else:
                rooms.leave(room, websocket)
                await websocket.send_json({"event": "left", "data": {"room": room}})
    except WebSocketDisconnect:
        logger.debug("Notification socket disconnected")
    finally:
        rooms.leave_all(websocket)
