# scheduler/work_queue.py
import asyncio


async def run_bounded(items, handler, concurrency=1):
    """
    Feed ``items`` through ``handler`` with at most ``concurrency`` in flight.

    Items are taken from a FIFO queue, so with ``concurrency=1`` they are
    handled strictly one after another in input order. Returns the handler
    results in input order.

    If a handler raises, the remaining workers are cancelled and the first
    exception propagates to the caller.
    """
    if concurrency < 1:
        raise ValueError("concurrency must be at least 1")

    queue = asyncio.Queue()
    for i, item in enumerate(items):
        queue.put_nowait((i, item))
    results = [None] * queue.qsize()

    async def worker():
        while True:
            try:
                i, item = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            results[i] = await handler(item)

    workers = [asyncio.create_task(worker()) for _ in range(min(concurrency, max(1, len(results))))]
    try:
        await asyncio.gather(*workers)
    except BaseException:
        for w in workers:
            w.cancel()
        await asyncio.gather(*workers, return_exceptions=True)
        raise
    return results
