"""
限流模块

每页调用之后检查上游配额；配额即将耗尽时，等到重置时间（加宽限期）再继续。
只在同一个爬虫的连续调用之间生效，各阶段顺序执行，不需要跨爬虫协调。
"""
import asyncio
import time
from typing import Awaitable, Callable, Dict, Optional
from loguru import logger

from core.models import RateLimitStatus


class RateLimiter:
    """
    协作式限流器

    Example:
        limiter = RateLimiter(grace=10)
        await limiter.wait(page.rate_limit, "Followers")
    """

    def __init__(
        self,
        grace: int = 10,
        fallback_sleep: int = 1000,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Args:
            grace: 重置时间之后额外等待的秒数
            fallback_sleep: 无法读取当前时间时的固定等待秒数
            clock: 返回当前 epoch 秒
            sleep: 异步等待函数
        """
        self.grace = grace
        self.fallback_sleep = fallback_sleep
        self._clock = clock
        self._sleep = sleep
        # 诊断信息：每个调用最近一次的配额状态
        self.last_status: Dict[str, RateLimitStatus] = {}
        self.stats = {
            "waits": 0,
            "seconds_waited": 0.0,
        }

    def compute_delay(self, status: RateLimitStatus) -> Optional[float]:
        """需要等待的秒数；配额充足返回 None"""
        if status.remaining > 1:
            return None
        try:
            now = self._clock()
        except (OSError, OverflowError, ValueError) as e:
            logger.warning("Could not read current time: {}", e)
            return float(self.fallback_sleep)
        return max(status.reset - now, 0) + self.grace

    async def wait(self, status: RateLimitStatus, call_info: str) -> float:
        """
        根据配额状态决定是否等待

        Returns:
            实际等待的秒数（0 表示未等待）
        """
        self.last_status[call_info] = status
        delay = self.compute_delay(status)
        if delay is None:
            logger.trace("Rate limit for {}: {} / {}", call_info, status.remaining, status.limit)
            return 0.0

        logger.info("Rate limit for {} reached. Waiting {:.0f} seconds", call_info, delay)
        self.stats["waits"] += 1
        self.stats["seconds_waited"] += delay
        await self._sleep(delay)
        return delay
