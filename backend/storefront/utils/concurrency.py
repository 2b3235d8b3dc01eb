import asyncio
from typing import Any, Awaitable, List


async def gather_all(*aws: Awaitable[Any]) -> List[Any]:
    """Run ``aws`` concurrently and wait for all of them before raising the first failure."""
    results = await asyncio.gather(*aws, return_exceptions=True)
    for result in results:
        if isinstance(result, BaseException):
            raise result
    return list(results)
