"""
时间线爬虫：自己的推文 / 提及

以最小 id 为水位向更早的推文分页，每条推文交给 TweetInspector 检查。
"""
from typing import Optional

from core.checkpoint import CheckpointKey, ResourceKind
from core.models import Page
from crawlers.base import BasePaginatedCrawler


class TimelineCrawler(BasePaginatedCrawler):
    """时间线爬虫基类（游标为上一页的最小推文 id）"""

    page_size = 50
    initial_cursor = None
    # 写入的聚合体字段
    collection: str = "tweets"

    def is_exhausted(self, cursor) -> bool:
        return False

    async def process_page(self, page: Page):
        for tweet in page.items:
            await self.ctx.inspector.inspect(tweet)
        async with self.storage.mutate() as data:
            getattr(data, self.collection).extend(page.items)


class UserTweetsCrawler(TimelineCrawler):
    name = "User Tweets"
    collection = "tweets"

    @property
    def checkpoint_key(self) -> CheckpointKey:
        return CheckpointKey(ResourceKind.USER_TWEETS)

    async def fetch_page(self, cursor: Optional[int]) -> Page:
        return await self.client.user_timeline(self.ctx.owner_id, count=self.page_size, min_id=cursor)


class UserMentionsCrawler(TimelineCrawler):
    name = "User Mentions"
    collection = "mentions"

    @property
    def checkpoint_key(self) -> CheckpointKey:
        return CheckpointKey(ResourceKind.USER_MENTIONS)

    async def fetch_page(self, cursor: Optional[int]) -> Page:
        return await self.client.mentions_timeline(count=self.page_size, min_id=cursor)
