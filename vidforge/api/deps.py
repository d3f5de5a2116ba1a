"""FastAPI dependencies resolving the services bound to the application."""

from __future__ import annotations

from fastapi import Request

from vidforge.downloads.manager import DownloadManager
from vidforge.jobs.scheduler import GenerationScheduler
from vidforge.pricing.table import PricingTable


def get_scheduler(request: Request) -> GenerationScheduler:
  return request.app.state.scheduler


def get_downloads(request: Request) -> DownloadManager:
  return request.app.state.downloads


def get_pricing(request: Request) -> PricingTable:
  return request.app.state.pricing
