from __future__ import annotations

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError

from vidforge import __version__
from vidforge.api.routes import batches, cost, queue
from vidforge.api.routes import downloads as downloads_routes
from vidforge.config import Settings, get_settings
from vidforge.core.errors import VidforgeError
from vidforge.core.exceptions import domain_exception_handler, global_exception_handler, http_exception_handler, request_validation_exception_handler
from vidforge.core.lifespan import lifespan
from vidforge.downloads.manager import DownloadManager
from vidforge.jobs.capability import GenerationCapability
from vidforge.jobs.factory import build_generation_services
from vidforge.jobs.scheduler import GenerationScheduler
from vidforge.pricing.table import PricingTable, load_pricing_table


def create_app(*, scheduler: GenerationScheduler, downloads: DownloadManager, pricing: PricingTable | None = None, settings: Settings | None = None) -> FastAPI:
  """Build the HTTP surface over an already wired scheduler and download manager."""
  app = FastAPI(title="vidforge-engine", version=__version__, lifespan=lifespan, docs_url=None, redoc_url=None)
  app.state.settings = settings or get_settings()
  app.state.scheduler = scheduler
  app.state.downloads = downloads
  app.state.pricing = pricing or load_pricing_table(app.state.settings.pricing_path)

  # Add exception handlers
  app.add_exception_handler(Exception, global_exception_handler)
  app.add_exception_handler(VidforgeError, domain_exception_handler)
  app.add_exception_handler(HTTPException, http_exception_handler)
  app.add_exception_handler(RequestValidationError, request_validation_exception_handler)

  @app.get("/health", include_in_schema=False)
  async def health_check() -> dict[str, str]:
    """Return a simple health status."""
    return {"status": "ok", "version": __version__}

  app.include_router(cost.router, prefix="/v1/cost", tags=["cost"])
  app.include_router(queue.router, prefix="/v1/queue", tags=["queue"])
  app.include_router(batches.router, prefix="/v1/batches", tags=["batches"])
  app.include_router(downloads_routes.router, prefix="/v1/downloads", tags=["downloads"])
  return app


def create_app_from_settings(generator: GenerationCapability, settings: Settings | None = None) -> FastAPI:
  """Wire services from settings around a generation backend and build the app."""
  resolved = settings or get_settings()
  services = build_generation_services(resolved, generator)
  return create_app(scheduler=services.scheduler, downloads=services.downloads, pricing=services.pricing, settings=resolved)
