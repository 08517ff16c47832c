import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from chathome.api import auth, chat, conversations, files, messages
from chathome.core import database
from chathome.core.blobs import BlobStore
from chathome.core.config import settings
from chathome.core.errors import ChatHomeError
from chathome.services.llm import get_llm_provider
from chathome.services.search import get_search_provider
from chathome.services.store import ConversationStore

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Configure logging based on debug setting
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s" if settings.debug
        else "%(levelname)-8s %(name)s: %(message)s",
    )

    database.init_db()
    settings.data_dir.mkdir(parents=True, exist_ok=True)

    # Provider clients and stores are shared by every request
    blobs = BlobStore(settings.data_dir / "files")
    app.state.blobs = blobs
    app.state.store = ConversationStore(database.engine, blobs)
    app.state.llm = get_llm_provider()
    app.state.search = get_search_provider()
    logger.info(f"{settings.app_name} started (llm={settings.llm_provider}, search={settings.search_provider})")

    yield


app = FastAPI(title=settings.app_name, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Chat-Id", "X-Chat-Title", "X-Chat-Created"],
)


@app.exception_handler(ChatHomeError)
async def chathome_error_handler(request: Request, exc: ChatHomeError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.reason}: {exc.detail}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.reason, "detail": exc.detail})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    first = exc.errors()[0] if exc.errors() else {}
    location = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    detail = f"{location}: {first.get('msg', 'invalid request')}" if location else first.get("msg", "invalid request")
    return JSONResponse(status_code=400, content={"error": "validation_failed", "detail": detail})


app.include_router(auth.router, prefix="/api/auth", tags=["auth"])
app.include_router(chat.router, prefix="/api/chat", tags=["chat"])
app.include_router(conversations.router, prefix="/api/conversations", tags=["conversations"])
app.include_router(files.router, prefix="/api/files", tags=["files"])
app.include_router(messages.router, prefix="/api/messages", tags=["messages"])


@app.get("/api/health")
async def health():
    return {"status": "ok", "app": settings.app_name}
