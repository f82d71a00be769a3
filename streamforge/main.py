"""
StreamForge — FastAPI entrypoint.
"""
from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Load .env before anything else
load_dotenv()

from streamforge.config import get_settings, load_config
from streamforge.connectors.registry import create_registry
from streamforge.middleware.auth import api_key_middleware
from streamforge.plugins import load_plugins_from_modules
from streamforge.routers.chat import router as chat_router
from streamforge.routers.config import router as config_router
from streamforge.tools.filesystem import register_core_tools
from streamforge.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    cfg = load_config()

    connectors = create_registry(cfg)
    tools = ToolRegistry()
    if cfg.tools.filesystem.enabled:
        register_core_tools(tools, max_file_size_mb=cfg.tools.filesystem.max_file_size_mb)
    plugins = load_plugins_from_modules(cfg.plugins, tools, connectors)

    app.state.connectors = connectors
    app.state.tools = tools
    app.state.plugins = plugins
    logger.info(
        "StreamForge ready: %d connectors, %d tools, %d plugins",
        len(connectors), len(tools), len(plugins),
    )

    yield


app = FastAPI(
    title="StreamForge",
    description="Streaming LLM connectors, tool registry and agent loop",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS_ORIGINS env var: comma-separated list of allowed origins.
# Default: localhost only (development).
_raw_origins = os.getenv("CORS_ORIGINS", "")
_cors_origins: list[str] = (
    [o.strip() for o in _raw_origins.split(",") if o.strip()]
    if _raw_origins
    else ["http://localhost:5173", "http://127.0.0.1:5173",
          "http://localhost:3000", "http://127.0.0.1:3000"]
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.middleware("http")(api_key_middleware)

app.include_router(chat_router, prefix="/api")
app.include_router(config_router, prefix="/api")


@app.get("/api/health")
async def health():
    return {"status": "ok", "version": "0.1.0"}


def start():
    import uvicorn
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run("streamforge.main:app", host=settings.host, port=settings.port)


if __name__ == "__main__":
    start()
