"""Floaty API: FastAPI application entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI

from floaty.config.cors import SecurityHeadersMiddleware, configure_cors
from floaty.config.logging import configure_logging
from floaty.config.settings import get_settings
from floaty.knowledge.routes import router as knowledge_router
from floaty.messages.routes import router as messages_router
from floaty.middleware.error_handler import register_error_handlers
from floaty.middleware.rate_limiter import RateLimiterMiddleware
from floaty.middleware.request_id import RequestIDMiddleware
from floaty.proxy.routes import router as proxy_router
from floaty.sessions.routes import router as sessions_router
from floaty.sync.routes import router as sync_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(get_settings().LOG_LEVEL)
    yield


app = FastAPI(
    title="Floaty API",
    description=(
        "Backend for the Floaty chat client.\n\n"
        "## Features\n"
        "- Fish Audio, Google Custom Search and web page proxies\n"
        "- Chat session and message storage on Supabase\n"
        "- Snapshot upload, download and local/cloud merge\n"
        "- Settings sync queue for LLM configs, AI roles, prompts and voice settings\n"
        "- Realtime change streams over SSE with polling fallback\n"
        "- Knowledge bases that add matching entries to chat system prompts\n\n"
        "## Authentication\n"
        "Proxy endpoints under `/api` require the `x-api-key` header.\n"
        "Endpoints under `/api/v1` require `Authorization: Bearer <supabase access token>`."
    ),
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
    openapi_tags=[
        {"name": "Health", "description": "Health check endpoints"},
        {"name": "Proxy", "description": "Fish Audio, search and page fetch proxies"},
        {"name": "Sessions", "description": "Chat sessions, snapshots and session change events"},
        {"name": "Messages", "description": "Messages of a session and message change events"},
        {"name": "Sync", "description": "Settings sync queue"},
        {"name": "Knowledge", "description": "Knowledge bases, entries and prompt enhancement"},
    ],
)

# --- Middleware (the last one added runs first) ---
app.add_middleware(RateLimiterMiddleware)
configure_cors(app)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RequestIDMiddleware)

# --- Error handlers ---
register_error_handlers(app)

# --- Routes ---
app.include_router(proxy_router)
app.include_router(sessions_router)
app.include_router(messages_router)
app.include_router(sync_router)
app.include_router(knowledge_router)


@app.get("/health", tags=["Health"], summary="Health check", description="Returns OK if the service is running.")
async def health_check():
    return {"status": "ok"}
