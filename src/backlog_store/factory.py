"""Dependency injection factory."""

import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from backlog_store.config import Config
from backlog_store.store.task_store import TaskStore
from backlog_store.store.task_watcher import BacklogWatcher
from backlog_store.websocket.connection_manager import ConnectionManager

logger = logging.getLogger(__name__)

# Global instances for dependency injection
_config: Config | None = None
_task_store: TaskStore | None = None
_connection_manager: ConnectionManager | None = None
_watcher: BacklogWatcher | None = None


def get_config() -> Config:
    """Get or create Config instance."""
    global _config
    if _config is None:
        _config = Config()
    return _config


def get_connection_manager() -> ConnectionManager:
    """Get or create ConnectionManager singleton."""
    global _connection_manager
    if _connection_manager is None:
        _connection_manager = ConnectionManager()
    return _connection_manager


def get_task_store() -> TaskStore:
    """Get or create the TaskStore singleton.

    Reloads triggered by file changes are pushed to WebSocket clients.
    """
    global _task_store
    if _task_store is None:
        _task_store = TaskStore(get_config().backlog_path)
        _task_store.add_listener(get_connection_manager().notify_tasks_changed)
    return _task_store


def start_backlog_watcher() -> None:
    """Start the file watcher that reloads the store on changes."""
    global _watcher
    config = get_config()
    store = get_task_store()

    if not store.backlog_path.exists():
        logger.warning(f"[Factory] Backlog folder not found: {store.backlog_path}")
        return

    try:
        watcher = BacklogWatcher(store.backlog_path, config.watch_debounce_seconds)
        watcher.set_callback(store.on_files_changed)
        watcher.start()
        _watcher = watcher
    except Exception as e:
        logger.error(f"[Factory] Failed to start watcher for {store.backlog_path}: {e}", exc_info=True)


def stop_backlog_watcher() -> None:
    """Stop the running file watcher."""
    global _watcher
    if _watcher is None:
        return
    try:
        _watcher.stop()
        logger.info("[Factory] Stopped backlog watcher")
    except Exception as e:
        logger.error(f"[Factory] Failed to stop watcher: {e}")
    _watcher = None


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application lifecycle - startup and shutdown."""
    get_connection_manager().bind_loop(asyncio.get_running_loop())

    logger.info("[Lifespan] Loading backlog...")
    await asyncio.to_thread(get_task_store().reload)

    logger.info("[Lifespan] Starting backlog watcher...")
    start_backlog_watcher()
    try:
        yield
    finally:
        logger.info("[Lifespan] Stopping backlog watcher...")
        stop_backlog_watcher()


def create_app() -> FastAPI:
    """Create FastAPI application (composition root)."""
    from backlog_store.api.tasks import router as tasks_router
    from backlog_store.api.websocket import router as ws_router

    app = FastAPI(
        title="BacklogStore",
        description="Markdown task backlog with cross-branch views and drag-and-drop ordering",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.include_router(tasks_router, prefix="/api")
    app.include_router(ws_router)  # WebSocket at /ws

    return app
