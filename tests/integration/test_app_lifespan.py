from __future__ import annotations

from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient

from tests.fakes import FakeGenerator, eventually, make_job, make_settings
from vidforge.core import logging as engine_logging
from vidforge.jobs.models import JobStatus
from vidforge.main import create_app_from_settings
from vidforge.storage.jobs_repo import FileJobsRepository


@pytest.mark.anyio
async def test_startup_restores_persisted_jobs_and_serves_them(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
  monkeypatch.setattr(engine_logging, "_STATE", engine_logging._LoggingState())
  jobs_dir = tmp_path / "jobs"
  repo = FileJobsRepository(jobs_dir)
  await repo.save_job(make_job(1, batch_id="batch_saved"))
  await repo.save_job(make_job(2, batch_id="batch_saved", status=JobStatus.IN_PROGRESS, progress=40, external_id="ext_2"))

  generator = FakeGenerator()
  app = create_app_from_settings(generator, make_settings(tmp_path, jobs_store_dir=str(jobs_dir)))
  async with app.router.lifespan_context(app):
    scheduler = app.state.scheduler
    assert scheduler.get_status("job_2").external_id == "ext_2"
    await eventually(lambda: generator.submitted != [])
    assert generator.submitted[0]["prompt"] == "prompt 1"

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
      batch = (await client.get("/v1/batches/batch_saved")).json()
      assert batch["batch"]["total"] == 2
      assert batch["batch"]["in_progress_count"] == 2

    generator.complete("ext_2")
    await eventually(lambda: scheduler.get_status("job_2").status is JobStatus.COMPLETED)
    # The download hand-off happens after the completed record is saved.
    await eventually(lambda: app.state.downloads.get_download_status("asset_ext_2") is not None)

  assert list((tmp_path / "logs").glob("vidforge_*.log"))
  assert engine_logging.current_log_path() is not None
  stored = await repo.get_job("job_2")
  assert stored is not None and stored.status is JobStatus.COMPLETED
