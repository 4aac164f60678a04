import asyncio

from batch import BatchedTask, ParallelEngine, PARALLEL_CONFIG


class TestParallelEngine:
    async def test_collects_results_and_failures(self):
        async def ok():
            return 1

        async def boom():
            raise RuntimeError("boom")

        result = await ParallelEngine.execute_parallel([
            BatchedTask(id="a", execute=ok),
            BatchedTask(id="b", execute=boom),
        ])

        assert result["succeeded"] == {"a": 1}
        assert result["failed"] == {"b": "boom"}
        assert result["total"] == 2
        assert result["totalDuration"].endswith("ms")

    async def test_concurrency_is_bounded(self):
        running = 0
        peak = 0

        async def task():
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.01)
            running -= 1

        result = await ParallelEngine.execute_parallel(
            [BatchedTask(id=str(i), execute=task) for i in range(10)],
            concurrency=3,
        )

        assert peak == 3
        assert len(result["succeeded"]) == 10

    async def test_concurrency_is_clamped(self):
        result = await ParallelEngine.execute_parallel([], concurrency=1000)
        assert result["concurrency"] == PARALLEL_CONFIG["maxConcurrency"]
