import asyncio
import logging
import uuid
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


class DocumentTaskRunner:
    """
    Owns the background tasks that process uploaded documents.

    At most one task runs per document. A task's own failures are expected
    to be recorded on the document; anything that still escapes is logged
    here and goes no further.
    """

    def __init__(self) -> None:
        self._tasks: dict[uuid.UUID, asyncio.Task] = {}

    def is_running(self, document_id: uuid.UUID) -> bool:
        task = self._tasks.get(document_id)
        return task is not None and not task.done()

    def submit(
        self,
        document_id: uuid.UUID,
        job: Callable[[uuid.UUID], Awaitable[None]],
    ) -> asyncio.Task | None:
        if self.is_running(document_id):
            logger.warning("Document %s is already being processed; ignoring submission", document_id)
            return None

        task = asyncio.create_task(job(document_id), name=f"process-document-{document_id}")
        self._tasks[document_id] = task
        task.add_done_callback(lambda t: self._on_done(document_id, t))
        logger.debug("Submitted processing task for document %s", document_id)
        return task

    def _on_done(self, document_id: uuid.UUID, task: asyncio.Task) -> None:
        if self._tasks.get(document_id) is task:
            del self._tasks[document_id]
        if task.cancelled():
            logger.warning("Processing task for document %s was cancelled", document_id)
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Processing task for document %s crashed", document_id, exc_info=exc)

    @property
    def pending(self) -> int:
        return sum(1 for t in self._tasks.values() if not t.done())

    async def drain(self) -> None:
        """Wait until every submitted task has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)
            # Done callbacks run on the next loop iteration.
            await asyncio.sleep(0)

    async def shutdown(self, timeout: float = 5.0) -> None:
        tasks = [t for t in self._tasks.values() if not t.done()]
        if not tasks:
            return
        logger.info("Waiting for %d document tasks to finish", len(tasks))
        _, still_running = await asyncio.wait(tasks, timeout=timeout)
        for task in still_running:
            task.cancel()
        if still_running:
            await asyncio.gather(*still_running, return_exceptions=True)
