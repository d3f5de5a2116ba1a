"""Wire the scheduler and download manager from settings."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from vidforge.config import Settings
from vidforge.downloads.manager import DownloadConfig, DownloadManager
from vidforge.jobs.capability import GenerationCapability
from vidforge.jobs.scheduler import GenerationScheduler, SchedulerConfig
from vidforge.notifications.tracking import NullTrackingStore, TrackingStore, WebhookConfig, WebhookTrackingStore
from vidforge.pricing.table import PricingTable, load_pricing_table
from vidforge.storage.assets import LocalAssetStorage
from vidforge.storage.jobs_repo import FileJobsRepository, InMemoryJobsRepository, JobsRepository
from vidforge.utils.time import Clock, utc_now


@dataclass(frozen=True)
class GenerationServices:
  scheduler: GenerationScheduler
  downloads: DownloadManager
  pricing: PricingTable


def build_tracking_store(settings: Settings) -> TrackingStore:
  """Return the webhook tracking store when configured, else a no-op store."""
  if settings.tracking_webhook_url:
    return WebhookTrackingStore(WebhookConfig(url=settings.tracking_webhook_url, timeout_seconds=settings.tracking_timeout_seconds))
  return NullTrackingStore()


def build_jobs_repository(settings: Settings) -> JobsRepository:
  if settings.jobs_store_dir:
    return FileJobsRepository(Path(settings.jobs_store_dir))
  return InMemoryJobsRepository()


def build_generation_services(settings: Settings, generator: GenerationCapability, *, clock: Clock = utc_now) -> GenerationServices:
  """Build one scheduler/download-manager pair sharing the same generator."""
  pricing = load_pricing_table(settings.pricing_path)
  downloads = DownloadManager(generator, LocalAssetStorage(settings.asset_storage_dir, base_url=settings.asset_base_url, clock=clock), config=DownloadConfig.from_settings(settings), clock=clock)
  scheduler = GenerationScheduler(
    generator,
    config=SchedulerConfig.from_settings(settings),
    tracking=build_tracking_store(settings),
    jobs_repo=build_jobs_repository(settings),
    downloads=downloads,
    pricing=pricing,
    clock=clock,
  )
  return GenerationServices(scheduler=scheduler, downloads=downloads, pricing=pricing)
