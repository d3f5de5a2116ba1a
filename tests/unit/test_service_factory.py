from __future__ import annotations

from pathlib import Path

from tests.fakes import FakeGenerator, make_settings
from vidforge.jobs.factory import build_generation_services, build_jobs_repository, build_tracking_store
from vidforge.notifications.tracking import NullTrackingStore, WebhookTrackingStore
from vidforge.storage.jobs_repo import FileJobsRepository, InMemoryJobsRepository


def test_tracking_store_follows_webhook_setting(tmp_path: Path) -> None:
  assert isinstance(build_tracking_store(make_settings(tmp_path)), NullTrackingStore)
  assert isinstance(build_tracking_store(make_settings(tmp_path, tracking_webhook_url="https://tracker.test/hook")), WebhookTrackingStore)


def test_jobs_repository_follows_store_dir(tmp_path: Path) -> None:
  assert isinstance(build_jobs_repository(make_settings(tmp_path)), InMemoryJobsRepository)
  assert isinstance(build_jobs_repository(make_settings(tmp_path, jobs_store_dir=str(tmp_path / "jobs"))), FileJobsRepository)
  assert (tmp_path / "jobs").is_dir()


def test_services_share_settings(tmp_path: Path) -> None:
  services = build_generation_services(make_settings(tmp_path, max_concurrent_generations=2, download_max_concurrent=3), FakeGenerator())
  assert services.scheduler.config.max_concurrent == 2
  assert services.downloads.config.max_concurrent == 3
  assert services.pricing.version == "1.0.0"
