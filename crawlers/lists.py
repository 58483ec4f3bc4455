"""
列表爬虫

先分页获取自己拥有的列表；对每个列表嵌套分页获取成员（独立检查点 "list-<id>"），
成员抓取完成后向聚合体写入该列表的 ListRecord（替换同一列表的旧记录）。
"""
from typing import List

from loguru import logger

from core.checkpoint import CheckpointKey, ResourceKind
from core.models import ListRecord, Page, TwitterList
from crawlers.base import BasePaginatedCrawler


class ListMembersCrawler(BasePaginatedCrawler):
    """单个列表的成员"""

    name = "List Members"
    page_size = 2000

    def __init__(self, ctx, twitter_list: TwitterList):
        super().__init__(ctx)
        self.twitter_list = twitter_list
        self.member_ids: List[int] = []

    @property
    def checkpoint_key(self) -> CheckpointKey:
        return CheckpointKey.list_members(self.twitter_list.id)

    async def fetch_page(self, cursor: int) -> Page:
        return await self.client.list_members(self.twitter_list.id, cursor=cursor, count=self.page_size)

    async def process_page(self, page: Page):
        logger.info("Processing {} members", len(page.items))
        for member in page.items:
            await self.ctx.profiles.add(member)
            self.member_ids.append(member.id)

    def partial_state(self) -> List[int]:
        return list(self.member_ids)

    def restore_partial_state(self, state):
        self.member_ids = [int(i) for i in state]

    async def on_complete(self):
        """写入列表记录（同一列表只保留一条，重新抓取时替换旧记录）"""
        record = ListRecord(
            name=self.twitter_list.name,
            list=self.twitter_list,
            members=list(self.member_ids),
        )
        async with self.storage.mutate() as data:
            data.lists = [r for r in data.lists if r.list.id != self.twitter_list.id]
            data.lists.append(record)


class ListsCrawler(BasePaginatedCrawler):
    """自己拥有的列表"""

    name = "Lists"
    page_size = 500

    @property
    def checkpoint_key(self) -> CheckpointKey:
        return CheckpointKey(ResourceKind.LISTS)

    async def fetch_page(self, cursor: int) -> Page:
        return await self.client.list_ownerships(self.ctx.owner_id, cursor=cursor, count=self.page_size)

    async def process_page(self, page: Page):
        for twitter_list in page.items:
            logger.info("Fetching members for list {}", twitter_list.full_name or twitter_list.name)
            await ListMembersCrawler(self.ctx, twitter_list).crawl()
