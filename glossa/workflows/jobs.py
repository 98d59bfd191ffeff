"""
Job queue for the evolution schedule.

Jobs are named coroutine factories held in a static ring queue and run one
at a time by a single processor.
"""

import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from glossa.communication.errors import QueueEmptyError
from glossa.memory.ring_queue import StaticRingQueue

logger = logging.getLogger(__name__)


@dataclass
class Job:
    name: str
    run: Callable[[], Awaitable[None]]


class JobQueue(StaticRingQueue[Job]):
    """Static queue of pending jobs."""

    def schedule(self, name: str, run: Callable[[], Awaitable[None]]) -> None:
        self.enqueue(Job(name, run))


class JobProcessor:
    """Runs queued jobs serially. A failing job stops the processor."""

    def __init__(self, queue: JobQueue):
        self.queue = queue
        self.current: Optional[str] = None
        self.completed = 0

    async def process(self) -> int:
        while True:
            try:
                job = self.queue.dequeue()
            except QueueEmptyError:
                self.current = None
                logger.info(f"Job queue empty after {self.completed} jobs")
                return self.completed

            self.current = job.name
            started = time.time()
            logger.info(f"Starting job {job.name}")
            await job.run()
            self.completed += 1
            logger.info(f"Job {job.name} took {time.time() - started:.2f}s")
