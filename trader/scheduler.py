import asyncio
import heapq
import itertools
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List

logger = logging.getLogger("Scheduler")

JobFactory = Callable[[], Awaitable[object]]


@dataclass(order=True)
class Job:
    due: float
    seq: int
    id: str = field(compare=False)
    name: str = field(compare=False)
    factory: JobFactory = field(compare=False, repr=False)


class DelayedJobQueue:
    """
    File de tâches différées (ordres stop-loss / take-profit après l'ordre parent).
    L'horloge est injectable : les tests avancent le temps sans attendre.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic, poll_interval: float = 0.5):
        self.clock = clock
        self.poll_interval = poll_interval
        self._heap: List[Job] = []
        self._jobs: Dict[str, Job] = {}
        self._seq = itertools.count()

    def schedule(self, delay: float, factory: JobFactory, name: str = "") -> str:
        job = Job(
            due=self.clock() + max(0.0, delay),
            seq=next(self._seq),
            id=uuid.uuid4().hex[:12],
            name=name or "job",
            factory=factory,
        )
        heapq.heappush(self._heap, job)
        self._jobs[job.id] = job
        logger.debug(f"⏱️ {job.name} planifié dans {delay:.1f}s ({job.id})")
        return job.id

    def cancel(self, job_id: str) -> bool:
        # Retrait paresseux : le job reste dans le tas mais n'est plus exécuté
        return self._jobs.pop(job_id, None) is not None

    def pending(self) -> List[Job]:
        return sorted(self._jobs.values())

    def __len__(self) -> int:
        return len(self._jobs)

    async def run_due(self) -> int:
        """Exécute les tâches échues, dans l'ordre. Une tâche en échec n'arrête pas les autres."""
        ran = 0
        now = self.clock()
        while self._heap and self._heap[0].due <= now:
            job = heapq.heappop(self._heap)
            if self._jobs.pop(job.id, None) is None:
                continue
            try:
                await job.factory()
            except Exception as e:
                logger.error(f"❌ Tâche {job.name} en échec: {e}")
            ran += 1
        return ran

    async def run_forever(self):
        logger.info("⏱️ File de tâches différées démarrée")
        while True:
            try:
                await self.run_due()
                await asyncio.sleep(self.poll_interval)
            except asyncio.CancelledError:
                logger.info("⏱️ File de tâches différées arrêtée")
                raise
