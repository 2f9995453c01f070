"""
Asset Registry Server

FastAPI application that exposes the files found under the configured
directories as a JSON registry and serves their content.
"""

import argparse
import asyncio
import json
import logging
import os
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.responses import FileResponse
from pydantic import BaseModel

from asset_server.errors import SerializationError
from asset_server.registry.file_registry import FileRegistry
from asset_server.utils.utils import (
    get_environment_config,
    get_server_config,
    parse_directories,
    parse_extensions,
    print_startup_info,
)
from asset_server.watchers.file_watcher import FileWatcher, WatcherConfig

# Load environment variables from .env file
load_dotenv()

# Configure logging with environment variable support
log_level = os.getenv("LOG_LEVEL", "info").upper()
logging.basicConfig(level=getattr(logging, log_level, logging.INFO))
logger = logging.getLogger(__name__)

APP_VERSION = "1.0.0"
APP_TITLE = os.getenv("APP_TITLE", "Asset Registry Server")
APP_DESCRIPTION = os.getenv(
    "APP_DESCRIPTION", "Registry of watched asset files with URLs to fetch each one"
)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


def _format_elapsed(seconds: float) -> str:
    """Return a compact human-readable duration like '1d 2h 3m 4s'."""
    total = int(seconds)
    days, rem = divmod(total, 86400)
    hours, rem = divmod(rem, 3600)
    minutes, secs = divmod(rem, 60)
    parts: list[str] = []
    if days:
        parts.append(f"{days}d")
    if days or hours:
        parts.append(f"{hours}h")
    if days or hours or minutes:
        parts.append(f"{minutes}m")
    parts.append(f"{secs}s")
    return " ".join(parts)


def encode_registry(registry: FileRegistry) -> bytes:
    """
    Encode a registry snapshot as a JSON array.

    Raises:
        SerializationError: If the snapshot cannot be encoded
    """
    entries = registry.snapshot()
    try:
        return json.dumps([entry.to_dict() for entry in entries]).encode("utf-8")
    except (TypeError, ValueError, UnicodeEncodeError) as e:
        raise SerializationError(f"Failed to encode {len(entries)} registry entries: {e}") from e


class HealthResponse(BaseModel):  # type: ignore[misc]
    status: str
    service: str
    version: str
    registered_files: int
    configured_directories: int
    file_watcher_active: bool
    startup_errors_count: int
    startup_errors: list[str]
    uptime: str
    uptime_seconds: float


def create_app(config: WatcherConfig) -> FastAPI:
    """
    Build the application for one watcher configuration.

    The file watcher and its registry are created here and owned by the
    returned app (``app.state.file_watcher``). Each lifespan re-walks the
    directories and starts a fresh watchdog observer, so the app can be
    started again after a shutdown. Failing to start the observer is fatal
    and propagates out of the lifespan.

    Args:
        config: Directories, extensions and URL settings

    Returns:
        Configured FastAPI application
    """
    file_watcher = FileWatcher(config)
    start_ts = time.monotonic()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """
        Walk the configured directories, then start watching them.

        The walk completes before the server accepts requests.
        """
        logger.info(f"Starting {APP_TITLE} v{APP_VERSION}")
        logger.info(f"File URLs use base {config.base_url}")

        app.state.startup_errors.clear()

        logger.info("📁 Walking configured directories...")
        counts = file_watcher.register_all()
        app.state.startup_errors.extend(file_watcher.walk_errors)
        logger.info(f"✅ Registered {sum(counts.values())} file(s) from {len(counts)} directory(ies)")

        logger.info("👀 Starting file watcher...")
        async with file_watcher:
            app.state.startup_errors.extend(file_watcher.notification_errors)

            if app.state.startup_errors:
                logger.warning(f"⚠️ Server started with {len(app.state.startup_errors)} errors:")
                for error in app.state.startup_errors:
                    logger.warning(f"  - {error}")
            else:
                logger.info("🎉 Asset registry server startup completed successfully")

            yield

            logger.info("Shutting down asset registry server")
        logger.info("Asset registry server shutdown complete")

    app = FastAPI(
        title=APP_TITLE,
        description=APP_DESCRIPTION,
        version=APP_VERSION,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        lifespan=lifespan,
    )
    app.state.file_watcher = file_watcher
    app.state.startup_errors = []

    @app.middleware("http")  # type: ignore[misc]
    async def add_cors_headers(request: Request, call_next: Any) -> Response:
        if request.method == "OPTIONS":
            return Response(status_code=204, headers=CORS_HEADERS)

        response: Response = await call_next(request)
        for name, value in CORS_HEADERS.items():
            response.headers.setdefault(name, value)
        return response

    @app.get("/registry.json", operation_id="registry")  # type: ignore[misc]
    async def registry_listing() -> Response:
        """
        List every registered file.

        Returns:
            JSON array of {label, type, url, absolutePath} objects
        """
        try:
            body = encode_registry(file_watcher.registry)
        except SerializationError as e:
            logger.error(str(e))
            raise HTTPException(status_code=500, detail="Failed to generate JSON") from e

        return Response(content=body, media_type="application/json")

    @app.get("/files/{file_path:path}", operation_id="get_file")  # type: ignore[misc]
    async def serve_file(file_path: str) -> FileResponse:
        """
        Serve the content of a registered file.

        The request path is matched against registered URLs exactly; unknown
        URLs and files that have since disappeared from disk are 404s.
        """
        url = f"{config.base_url}/files/{file_path}"
        entry = file_watcher.registry.find_by_url(url)

        if entry is None:
            raise HTTPException(status_code=404, detail="Not Found")

        if not os.path.isfile(entry.absolute_path):
            logger.warning(f"Registered file no longer exists: {entry.absolute_path}")
            raise HTTPException(status_code=404, detail="Not Found")

        return FileResponse(entry.absolute_path)

    @app.get("/health", operation_id="health", response_model=HealthResponse)  # type: ignore[misc]
    async def health_check() -> HealthResponse:
        """
        Health check endpoint for monitoring server status.

        Returns:
            Health status including registry size and startup errors
        """
        startup_errors: list[str] = app.state.startup_errors
        uptime_seconds = time.monotonic() - start_ts

        status = "healthy"
        if startup_errors:
            status = "degraded"
        elif not file_watcher.is_watching:
            status = "starting"

        return HealthResponse(
            status=status,
            service="asset-server",
            version=APP_VERSION,
            registered_files=len(file_watcher.registry),
            configured_directories=len(config.directories),
            file_watcher_active=file_watcher.is_watching,
            startup_errors_count=len(startup_errors),
            startup_errors=startup_errors,
            uptime=_format_elapsed(uptime_seconds),
            uptime_seconds=uptime_seconds,
        )

    @app.get("/api/watcher/status", operation_id="watcher_status")  # type: ignore[misc]
    async def watcher_status() -> dict[str, Any]:
        """
        Get file watcher status and statistics.

        Returns:
            Dictionary containing watcher information and recent events
        """
        try:
            status = file_watcher.get_status()
            return {
                "status": "active" if status["is_watching"] else "stopped",
                "watcher_info": status,
                "recent_events": file_watcher.get_recent_events(),
            }
        except Exception as e:
            logger.error(f"Error getting watcher status: {e}")
            raise HTTPException(status_code=500, detail="Error getting watcher status") from e

    return app


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line flags, defaulting to environment configuration."""
    env_config = get_environment_config()
    server_config = get_server_config()

    parser = argparse.ArgumentParser(description=APP_DESCRIPTION)
    parser.add_argument(
        "--directory",
        default=os.getenv("WATCH_DIRECTORIES", ""),
        help="Space-separated 'label:directory' or 'directory' specs to watch",
    )
    parser.add_argument(
        "--extensions",
        default=os.getenv("WATCH_EXTENSIONS", ""),
        help="Comma-separated file extensions to register, e.g. 'png,jpg'",
    )
    parser.add_argument("--port", type=int, default=server_config["port"], help="Port to serve on")
    parser.add_argument("--host", default=server_config["host"], help="Interface to bind")
    parser.add_argument(
        "--public-host", default=env_config["public_host"], help="Host name used in registered file URLs"
    )
    parser.add_argument(
        "--live-updates",
        action="store_true",
        default=env_config["live_updates"],
        help="Update the registry when watched files are created, deleted or moved",
    )
    parser.add_argument("--log-level", default=server_config["log_level"], help="Server log level")
    return parser.parse_args(argv)


def build_watcher_config(args: argparse.Namespace) -> WatcherConfig:
    """Turn parsed flags into a WatcherConfig."""
    return WatcherConfig(
        directories=parse_directories(args.directory),
        extensions=parse_extensions(args.extensions),
        host=args.public_host,
        port=args.port,
        live_updates=args.live_updates,
        log_level=get_environment_config()["watch_log_level"],
    )


def main(argv: list[str] | None = None) -> None:
    """
    Main entry point for the asset registry server.

    Environment Variables:
        WATCH_DIRECTORIES: Directory specs to watch (default: none)
        WATCH_EXTENSIONS: Extensions to register (default: none)
        HOST: Server host (default: 127.0.0.1)
        PORT: Server port (default: 9191)
        PUBLIC_HOST: Host used in file URLs (default: localhost)
        LIVE_UPDATES: Apply change events to the registry (default: false)
        LOG_LEVEL: Logging level (default: info)
        WATCH_LOG_LEVEL: File watcher log level (default: INFO)
    """
    args = parse_args(argv)
    watcher_config = build_watcher_config(args)
    server_config = {"host": args.host, "port": args.port, "log_level": args.log_level.lower()}

    print_startup_info(watcher_config, server_config)

    app = create_app(watcher_config)

    config = uvicorn.Config(
        app,
        host=server_config["host"],
        port=server_config["port"],
        log_level=server_config["log_level"],
        access_log=True,
        use_colors=True,
    )

    server = uvicorn.Server(config)

    try:
        asyncio.run(server.serve())
    except KeyboardInterrupt:
        logger.info("\n👋 Server stopped by user")
    except Exception as e:
        logger.error(f"❌ Server error: {e}")
        raise


if __name__ == "__main__":
    main()
