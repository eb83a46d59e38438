# finder/aggregator.py
import asyncio

from utils.log import get_logger

logger = get_logger("aggregator")


def dedupe_by_link(results):
    """Drop results whose link was already seen; the first occurrence wins."""
    seen = set()
    unique = []
    for r in results:
        if r.link not in seen:
            seen.add(r.link)
            unique.append(r)
    return unique


class Aggregator:
    """
    Fan a book query out to every connector and merge the answers.

    Connectors run concurrently. A connector that raises contributes an
    empty list, so one broken source never hides the others. Results keep
    connector order and are deduplicated by link.
    """

    def __init__(self, connectors):
        self.connectors = list(connectors)

    async def close(self):
        for c in self.connectors:
            await c.close()

    async def _guarded(self, connector, query):
        try:
            return await connector.search(query)
        except Exception:
            logger.exception(f"{connector.name} search failed")
            return []

    async def search(self, title, author=None):
        query = f"{title} {author}" if author else title
        batches = await asyncio.gather(*(self._guarded(c, query) for c in self.connectors))

        flat = [r for batch in batches for r in batch]
        unique = dedupe_by_link(flat)
        logger.info(
            f"Search {query!r}: {len(flat)} raw results, {len(unique)} after dedupe"
        )
        return unique
