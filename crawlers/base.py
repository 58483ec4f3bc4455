"""
爬虫基类

包含所有分页爬虫共享的组件：
- CrawlContext: 一次运行中共享的协作者（客户端、存储、检查点、限流、下载队列）
- BasePaginatedCrawler: 游标分页循环（断点续传 + 同游标重试 + 限流）
"""
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, Optional

from loguru import logger
from tenacity import AsyncRetrying, RetryCallState, stop_after_attempt, stop_never, wait_fixed

from config import Config
from core.checkpoint import CheckpointKey, CheckpointManager
from core.downloader import DownloadInstruction
from core.models import Cursor, Page
from core.rate_limit import RateLimiter
from core.storage import Storage
from core.twitter_api import TwitterClient

Sender = Callable[[DownloadInstruction], Awaitable[None]]


class CrawlContext:
    """
    一次抓取运行的共享上下文

    ProfileCache 与 TweetInspector 在这里创建一次，供所有阶段复用。
    """

    def __init__(
        self,
        config: Config,
        client: TwitterClient,
        storage: Storage,
        send: Sender,
        checkpoints: Optional[CheckpointManager] = None,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        # 避免循环导入
        from crawlers.inspector import TweetInspector
        from crawlers.profiles import ProfileCache

        self.config = config
        self.client = client
        self.storage = storage
        self.send = send
        self.checkpoints = checkpoints or CheckpointManager(storage)
        self.rate_limiter = rate_limiter or RateLimiter(
            grace=config.crawler.rate_limit_grace,
            fallback_sleep=config.crawler.rate_limit_fallback_sleep,
        )
        self.profiles = ProfileCache(client, storage, send)
        self.inspector = TweetInspector(self)

    @property
    def owner_id(self) -> int:
        return self.config.account.user_id


class BasePaginatedCrawler(ABC):
    """
    分页爬虫基类

    循环：读取检查点 -> 请求一页 -> 空页结束 -> 处理条目 -> 限流 -> 提交本页。
    每页处理完成后，聚合体与检查点在同一事务中保存，崩溃最多丢失一页进度。
    完成后先执行 on_complete，再在同一事务中保存聚合体并清除检查点。

    子类需要实现:
    - fetch_page(cursor): 请求一页
    - process_page(page): 处理本页条目并写入聚合体
    """

    # 日志/限流中使用的名称
    name: str = "feed"
    page_size: int = 50
    # 未开始时的游标（id/列表游标为 -1，时间线为 None）
    initial_cursor: Optional[Cursor] = -1

    def __init__(self, ctx: CrawlContext):
        self.ctx = ctx
        self.config = ctx.config
        self.client = ctx.client
        self.storage = ctx.storage
        self.stats = {
            "pages_fetched": 0,
            "page_errors": 0,
            "items": 0,
        }

    @property
    @abstractmethod
    def checkpoint_key(self) -> CheckpointKey:
        """本爬虫的检查点键"""

    @abstractmethod
    async def fetch_page(self, cursor: Optional[Cursor]) -> Page:
        """请求游标处的一页"""

    @abstractmethod
    async def process_page(self, page: Page):
        """处理本页全部条目"""

    async def on_complete(self):
        """爬取完成后的钩子（子类可重写）"""

    def partial_state(self) -> Optional[Any]:
        """随检查点保存的累计状态（只在完成时才写入聚合体的数据）"""
        return None

    def restore_partial_state(self, state: Any):
        """续传时恢复 partial_state 保存的内容"""

    def is_exhausted(self, cursor: Optional[Cursor]) -> bool:
        """游标表示没有下一页（64 位游标为 0）"""
        return cursor == 0

    def _log_page_error(self, retry_state: RetryCallState):
        self.stats["page_errors"] += 1
        error = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning("{} page error (attempt {}): {!r}", self.name, retry_state.attempt_number, error)

    async def fetch_page_with_retry(self, cursor: Optional[Cursor]) -> Page:
        """
        请求一页，失败时在同一游标上重试

        默认不限次数、不退避；max_page_retries 用尽后抛出最后一次异常。
        """
        max_retries = self.config.crawler.max_page_retries
        retrying = AsyncRetrying(
            stop=stop_after_attempt(max_retries + 1) if max_retries is not None else stop_never,
            wait=wait_fixed(self.config.crawler.page_retry_delay),
            before_sleep=self._log_page_error,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await self.fetch_page(cursor)

    async def crawl(self) -> Dict[str, Any]:
        """
        爬取到分页耗尽

        Returns:
            统计信息
        """
        checkpoints = self.ctx.checkpoints
        cursor = checkpoints.paging_position(self.checkpoint_key)
        if cursor is None:
            cursor = self.initial_cursor
        else:
            logger.info("📌 Resuming {} from {}", self.name, cursor)
            state = checkpoints.partial_state(self.checkpoint_key)
            if state is not None:
                self.restore_partial_state(state)

        while True:
            logger.info("Downloading {} at {}", self.name, cursor)
            page = await self.fetch_page_with_retry(cursor)
            self.stats["pages_fetched"] += 1
            if not page.items:
                break

            await self.process_page(page)
            self.stats["items"] += len(page.items)

            await self.ctx.rate_limiter.wait(page.rate_limit, self.name)
            cursor = page.next_cursor
            if cursor is None or self.is_exhausted(cursor):
                break
            await checkpoints.commit_page(self.checkpoint_key, cursor, self.partial_state())

        await self.on_complete()
        await checkpoints.commit_page(self.checkpoint_key, None)
        logger.success("✅ {} complete: {}", self.name, self.stats)
        return dict(self.stats)
