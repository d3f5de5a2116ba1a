"""Periodic batch status refresh bound to an open batch view."""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable

from vidforge.jobs.batch import BatchSummary
from vidforge.jobs.scheduler import GenerationScheduler

logger = logging.getLogger(__name__)

BatchUpdateCallback = Callable[[BatchSummary], Awaitable[None] | None]


class BatchWatcher:
  """Pushes a batch summary to ``on_update`` every ``interval_seconds``.

  ``start`` and ``stop`` are idempotent and the watcher can be restarted after
  it stops. The loop ends by itself once the batch reaches a terminal status,
  after delivering that final summary.
  """

  def __init__(self, scheduler: GenerationScheduler, batch_id: str, on_update: BatchUpdateCallback, *, interval_seconds: float = 5.0) -> None:
    if interval_seconds < 0:
      raise ValueError("interval_seconds must be zero or positive")
    self._scheduler = scheduler
    self._batch_id = batch_id
    self._on_update = on_update
    self._interval_seconds = interval_seconds
    self._task: asyncio.Task[None] | None = None
    self._last_summary: BatchSummary | None = None

  @property
  def running(self) -> bool:
    return self._task is not None and not self._task.done()

  @property
  def last_summary(self) -> BatchSummary | None:
    return self._last_summary

  def start(self) -> None:
    if self.running:
      return
    self._task = asyncio.create_task(self._run(), name=f"batch-watch:{self._batch_id}")

  async def stop(self) -> None:
    task = self._task
    self._task = None
    if task is None or task.done():
      return
    task.cancel()
    try:
      await task
    except asyncio.CancelledError:
      pass

  async def wait(self) -> None:
    """Wait until the watcher stops on its own (terminal batch) or is stopped."""
    if self._task is not None:
      await asyncio.shield(self._task)

  async def _run(self) -> None:
    while True:
      summary = self._scheduler.get_batch_status(self._batch_id)
      self._last_summary = summary
      try:
        result = self._on_update(summary)
        if inspect.isawaitable(result):
          await result
      except Exception:  # noqa: BLE001
        logger.warning("Batch watcher callback failed batch_id=%s", self._batch_id, exc_info=True)
      if summary.is_terminal:
        logger.info("Batch watcher finished batch_id=%s status=%s", self._batch_id, summary.status.value)
        return
      await asyncio.sleep(self._interval_seconds)
