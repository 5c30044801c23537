import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from docsync.api import callback_routes, routes
from docsync.api.errors import register_exception_handlers
from docsync.config.settings import Settings
from docsync.logging.logger import Log
from docsync.services import Services, build_services


def create_app(settings: Settings, services: Services | None = None) -> FastAPI:
    """Build the HTTP app.

    When ``services`` is given (tests) it is used as-is and no worker loops are
    started; otherwise the lifespan builds them and, if ``enable_jobs`` is set,
    runs every job loop alongside the server.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        if services is not None:
            app.state.services = services
            yield
            return

        async with build_services(settings) as built:
            app.state.services = built
            worker_task: asyncio.Task[None] | None = None
            if settings.enable_jobs:
                worker_task = asyncio.create_task(built.worker.run())
                Log.info("Background job loops started")
            else:
                Log.info("Background jobs disabled (ENABLE_JOBS=false)")
            try:
                yield
            finally:
                if worker_task is not None:
                    worker_task.cancel()
                    try:
                        await worker_task
                    except asyncio.CancelledError:
                        Log.info("Background job loops stopped")

    app = FastAPI(title="docsync-worker", lifespan=lifespan)
    if services is not None:
        app.state.services = services
    register_exception_handlers(app)
    app.include_router(routes.router)
    app.include_router(callback_routes.router)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return app
