"""
抓取编排

按固定顺序运行启用的阶段：推文 -> 提及 -> 粉丝 -> 关注 -> 列表。
每个阶段前发送 Loading，阶段完成后保存聚合体；全部完成后关闭下载 worker，
再保存一次（记录最后的下载），最后发送 Finished(快照)。
"""
from typing import List, Optional, Tuple, Type

from loguru import logger

from config import Config
from core.checkpoint import CheckpointManager
from core.downloader import DownloadWorker
from core.models import CrawlAggregate
from core.progress import Error, Finished, Loading, ProgressChannel
from core.rate_limit import RateLimiter
from core.storage import Storage
from core.twitter_api import TwitterClient
from crawlers.base import BasePaginatedCrawler, CrawlContext
from crawlers.lists import ListsCrawler
from crawlers.relations import FollowersCrawler, FollowsCrawler
from crawlers.timelines import UserMentionsCrawler, UserTweetsCrawler

# (进度文本, CrawlOptions 开关, 爬虫类)
PHASES: List[Tuple[str, str, Type[BasePaginatedCrawler]]] = [
    ("User Tweets", "tweets", UserTweetsCrawler),
    ("User Mentions", "mentions", UserMentionsCrawler),
    ("Followers", "followers", FollowersCrawler),
    ("Follows", "follows", FollowsCrawler),
    ("Lists", "lists", ListsCrawler),
]


class CrawlOrchestrator:
    """
    抓取编排器

    Example:
        async with TwitterClient(config) as client:
            orchestrator = CrawlOrchestrator(config, storage, client, progress)
            snapshot = await orchestrator.run()
    """

    def __init__(
        self,
        config: Config,
        storage: Storage,
        client: TwitterClient,
        progress: ProgressChannel,
        worker: Optional[DownloadWorker] = None,
        checkpoints: Optional[CheckpointManager] = None,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        self.config = config
        self.storage = storage
        self.progress = progress
        self.worker = worker or DownloadWorker(storage, config)
        self.ctx = CrawlContext(
            config,
            client,
            storage,
            self.worker.submit,
            checkpoints=checkpoints,
            rate_limiter=rate_limiter,
        )
        self.phase_stats = {}

    def enabled_phases(self) -> List[Tuple[str, Type[BasePaginatedCrawler]]]:
        options = self.config.crawl
        return [(label, crawler_cls) for label, flag, crawler_cls in PHASES if getattr(options, flag)]

    async def save_data(self):
        """保存聚合体（失败不中止运行）"""
        if not await self.storage.save():
            logger.warning("Could not write out data")

    async def run(self) -> CrawlAggregate:
        """
        运行全部启用的阶段

        某个阶段不可恢复的失败会中止整个运行（之前阶段已保存的内容保留）。

        Returns:
            最终聚合体快照
        """
        self.worker.start()
        try:
            for label, crawler_cls in self.enabled_phases():
                await self.progress.send(Loading(text=label))
                logger.info("🚀 Phase: {}", label)
                self.phase_stats[label] = await crawler_cls(self.ctx).crawl()
                await self.save_data()
        except BaseException:
            await self.worker.abort()
            raise

        await self.worker.finish()
        logger.info("📊 Download stats: {}", self.worker.get_stats())
        # 最后一个阶段之后完成的下载只在内存中
        await self.save_data()

        snapshot = await self.storage.snapshot()
        await self.progress.send(Finished(snapshot=snapshot))
        return snapshot

    async def run_and_report(self) -> Optional[CrawlAggregate]:
        """运行并把中止原因作为 Error 事件发送"""
        try:
            return await self.run()
        except Exception as e:
            logger.error("❌ Crawl aborted: {!r}", e)
            await self.progress.send(Error(cause=e))
            return None


async def fetch(config: Config, storage: Storage, progress: ProgressChannel) -> Optional[CrawlAggregate]:
    """便捷函数：创建客户端并运行一次完整抓取"""
    async with TwitterClient(config) as client:
        return await CrawlOrchestrator(config, storage, client, progress).run_and_report()
