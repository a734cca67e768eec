"""Fixed-interval refresh of the current game payload."""
from __future__ import annotations

import asyncio
import logging
from typing import Callable, Set

from common.config.scoring import scoring_config
from common.types import Payload
from scoring.client import UploadClient
from scoring.exceptions import PollError

logger = logging.getLogger(__name__)

UpdateCallback = Callable[[Payload], None]


class PollingSession:
    """
    Re-fetches one game every ``interval`` seconds, first tick immediately.

    Ticks are not serialized: each gets a sequence number and a response is
    applied only if it is newer than the last applied one, so a slow early
    request can never overwrite a later result. Failed ticks are skipped.
    """

    def __init__(self, client: UploadClient, interval: float | None = None):
        self._client = client
        self._interval = interval if interval is not None else scoring_config.poll_interval_sec
        self._game_id: str | None = None
        self._on_update: UpdateCallback | None = None
        self._payload: Payload | None = None
        self._timer: asyncio.Task | None = None
        self._inflight: Set[asyncio.Task] = set()
        self._stopped = True
        self._issued_seq = 0
        self._applied_seq = 0
        self._session = 0

    @property
    def active(self) -> bool:
        return not self._stopped

    @property
    def game_id(self) -> str | None:
        return self._game_id

    @property
    def payload(self) -> Payload | None:
        return self._payload

    @property
    def ticks_issued(self) -> int:
        return self._issued_seq

    def start(self, game_id: str | None, on_update: UpdateCallback, initial: Payload | None = None) -> None:
        if not self._stopped:
            self.stop()

        self._game_id = game_id
        self._on_update = on_update
        self._payload = initial
        self._issued_seq = 0
        self._applied_seq = 0
        self._session += 1
        self._stopped = False
        self._timer = asyncio.create_task(self._run())
        logger.info("Polling game %s every %.1fs", game_id, self._interval)

    def stop(self) -> None:
        if self._stopped:
            return
        self._stopped = True
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        for task in list(self._inflight):
            task.cancel()
        self._inflight.clear()
        logger.info("Stopped polling game %s", self._game_id)

    async def aclose(self) -> None:
        timer = self._timer
        pending = list(self._inflight)
        self.stop()
        tasks = [t for t in [timer, *pending] if t is not None]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        next_time = loop.time()
        while not self._stopped:
            self._issue_tick()
            next_time += self._interval
            delay = next_time - loop.time()
            if delay < -(self._interval * 3):
                # Far behind schedule; resync rather than firing a burst.
                next_time = loop.time()
                delay = 0.0
            await asyncio.sleep(max(0.0, delay))

    def _issue_tick(self) -> None:
        self._issued_seq += 1
        task = asyncio.create_task(self._tick(self._issued_seq, self._session))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def _tick(self, seq: int, session: int) -> None:
        try:
            payload = await self._client.fetch_game(self._game_id)
        except PollError as exc:
            logger.debug("Poll tick %d skipped: %s", seq, exc)
            return

        if self._stopped or session != self._session:
            return
        if seq <= self._applied_seq:
            logger.debug("Discarding stale poll tick %d (applied %d)", seq, self._applied_seq)
            return

        self._applied_seq = seq
        self._payload = payload
        if self._on_update is not None:
            try:
                self._on_update(payload)
            except Exception:
                logger.exception("Poll update handler failed for game %s", self._game_id)
