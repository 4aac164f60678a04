"""
Parallel execution engine for independent sub-fetches of one tool call.
"""
import asyncio
import time
import logging
from typing import List, Callable, Dict, Any, Awaitable
from dataclasses import dataclass

logger = logging.getLogger("sailpoint_mcp")

PARALLEL_CONFIG = {
    "defaultConcurrency": 5,
    "maxConcurrency": 20,
}


@dataclass
class BatchedTask:
    id: str
    execute: Callable[[], Awaitable[Any]]


class ParallelEngine:
    @staticmethod
    async def execute_parallel(
        tasks: List[BatchedTask],
        concurrency: int = PARALLEL_CONFIG["defaultConcurrency"],
    ) -> Dict[str, Any]:
        """
        Run tasks concurrently and collect results by task id.

        Tasks are independent: one failing does not cancel the others.
        Returns {"succeeded": {id: result}, "failed": {id: error message}, ...}.
        """
        concurrency = min(max(1, concurrency), PARALLEL_CONFIG["maxConcurrency"])
        semaphore = asyncio.Semaphore(concurrency)

        results = {
            "succeeded": {},
            "failed": {},
            "total": len(tasks),
            "concurrency": concurrency,
        }
        start = time.time()

        async def worker(task: BatchedTask):
            async with semaphore:
                try:
                    results["succeeded"][task.id] = await task.execute()
                    logger.debug(f"[PARALLEL] ✅ {task.id}")
                except Exception as e:
                    results["failed"][task.id] = str(e)
                    logger.error(f"[PARALLEL] ❌ {task.id}: {e}")

        await asyncio.gather(*[worker(t) for t in tasks])

        total_duration = (time.time() - start) * 1000
        results["totalDuration"] = f"{total_duration:.2f}ms"
        return results
