from __future__ import annotations

import asyncio

import pytest

from tests.fakes import FakeClock, FakeGenerator, eventually, make_job
from vidforge.jobs.batch import BatchStatus, BatchSummary
from vidforge.jobs.scheduler import GenerationScheduler, SchedulerConfig
from vidforge.jobs.watcher import BatchWatcher


@pytest.mark.anyio
async def test_watcher_pushes_updates_until_the_batch_finishes(generator: FakeGenerator) -> None:
  scheduler = GenerationScheduler(generator, config=SchedulerConfig(poll_interval_seconds=0.01), clock=FakeClock())
  await scheduler.submit_batch([make_job(1), make_job(2)])
  seen: list[BatchSummary] = []

  async def on_update(summary: BatchSummary) -> None:
    seen.append(summary)

  watcher = BatchWatcher(scheduler, "batch_a", on_update, interval_seconds=0.01)
  watcher.start()
  watcher.start()
  await eventually(lambda: len(seen) >= 2)
  assert seen[0].status is BatchStatus.GENERATING

  await eventually(lambda: len(generator.submitted) == 2)
  generator.complete("vid_1")
  generator.complete("vid_2")
  await asyncio.wait_for(watcher.wait(), timeout=3)

  assert watcher.running is False
  assert watcher.last_summary is not None
  assert watcher.last_summary.status is BatchStatus.COMPLETED
  assert seen[-1].progress_percentage == 100
  await scheduler.shutdown()


@pytest.mark.anyio
async def test_callback_errors_do_not_stop_the_watcher(generator: FakeGenerator) -> None:
  scheduler = GenerationScheduler(generator, clock=FakeClock())
  await scheduler.submit_video(make_job(1))
  calls: list[int] = []

  def on_update(summary: BatchSummary) -> None:
    calls.append(summary.total)
    raise RuntimeError("ui went away")

  watcher = BatchWatcher(scheduler, "batch_a", on_update, interval_seconds=0.01)
  watcher.start()
  await eventually(lambda: len(calls) >= 3)
  assert watcher.running is True
  await watcher.stop()
  await watcher.stop()
  assert watcher.running is False
  await scheduler.shutdown()


def test_interval_must_not_be_negative(generator: FakeGenerator) -> None:
  scheduler = GenerationScheduler(generator)
  with pytest.raises(ValueError):
    BatchWatcher(scheduler, "batch_a", lambda summary: None, interval_seconds=-1)
