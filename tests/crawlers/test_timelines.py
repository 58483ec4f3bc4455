"""
时间线爬虫单元测试（分页、检查点、重试、限流）
"""
import unittest
import asyncio

from core.checkpoint import CheckpointKey, ResourceKind
from core.storage import Storage
from crawlers.timelines import UserMentionsCrawler, UserTweetsCrawler
from fakes import FakeFeed, FakeTwitterClient, make_config, make_context, make_page, make_tweet


def three_pages():
    return {
        None: make_page([make_tweet(30), make_tweet(29)], next_cursor=29),
        29: make_page([make_tweet(20)], next_cursor=20),
        20: make_page([make_tweet(10)], next_cursor=10),
    }


class TestUserTweetsCrawler(unittest.TestCase):

    def setUp(self):
        self.client = FakeTwitterClient()
        self.client.timeline = FakeFeed(three_pages())
        self.key = CheckpointKey(ResourceKind.USER_TWEETS)

    def tearDown(self):
        self.ctx.storage.close()

    def make_crawler(self, **crawler_settings):
        cfg = make_config(tweet_profiles=False)
        for name, value in crawler_settings.items():
            setattr(cfg.crawler, name, value)
        self.ctx = make_context(cfg, client=self.client)
        return UserTweetsCrawler(self.ctx)

    def test_pages_until_empty(self):
        """三页之后遇到空页结束，检查点被清除"""
        crawler = self.make_crawler()
        stats = asyncio.run(crawler.crawl())

        self.assertEqual(self.client.timeline.calls, [None, 29, 20, 10])
        self.assertEqual([t.id for t in self.ctx.storage.data.tweets], [30, 29, 20, 10])
        self.assertEqual(stats["pages_fetched"], 4)
        self.assertEqual(stats["items"], 4)
        self.assertFalse(self.ctx.checkpoints.exists(self.key))

    def test_resume_from_checkpoint(self):
        """有检查点时从记录的游标继续"""
        crawler = self.make_crawler()
        self.ctx.checkpoints.set_paging_position(self.key, 20)
        asyncio.run(crawler.crawl())

        self.assertEqual(self.client.timeline.calls, [20, 10])
        self.assertEqual([t.id for t in self.ctx.storage.data.tweets], [10])

    def test_failure_keeps_checkpoint_then_resumes(self):
        """中途失败时检查点停在最后完成的一页，重新运行从那里继续"""
        pages = three_pages()
        pages[29] = [RuntimeError("connection reset"), pages[29]]
        self.client.timeline = FakeFeed(pages)
        crawler = self.make_crawler(max_page_retries=0)

        with self.assertRaises(RuntimeError):
            asyncio.run(crawler.crawl())
        self.assertEqual(self.ctx.checkpoints.paging_position(self.key), 29)

        asyncio.run(UserTweetsCrawler(self.ctx).crawl())
        self.assertEqual(self.client.timeline.calls, [None, 29, 29, 20, 10])
        self.assertEqual([t.id for t in self.ctx.storage.data.tweets], [30, 29, 20, 10])
        self.assertFalse(self.ctx.checkpoints.exists(self.key))

    def test_crash_keeps_completed_pages_on_disk(self):
        """崩溃后从 SQLite 重新加载：已提交的页都在，检查点指向下一页，重启不重复也不遗漏"""
        pages = three_pages()
        pages[20] = [RuntimeError("process killed"), pages[20]]
        self.client.timeline = FakeFeed(pages)
        crawler = self.make_crawler(max_page_retries=0)

        with self.assertRaises(RuntimeError):
            asyncio.run(crawler.crawl())

        restarted = Storage(self.ctx.storage.sqlite_path, self.ctx.storage.media_dir)
        restarted.connect()
        try:
            self.assertTrue(restarted.load())
            self.assertEqual([t.id for t in restarted.data.tweets], [30, 29, 20])
            ctx = make_context(self.ctx.config, client=self.client, storage=restarted)
            self.assertEqual(ctx.checkpoints.paging_position(self.key), 20)

            asyncio.run(UserTweetsCrawler(ctx).crawl())
            self.assertEqual([t.id for t in restarted.data.tweets], [30, 29, 20, 10])
        finally:
            restarted.close()

        reloaded = Storage(self.ctx.storage.sqlite_path, self.ctx.storage.media_dir)
        reloaded.connect()
        try:
            reloaded.load()
            self.assertEqual([t.id for t in reloaded.data.tweets], [30, 29, 20, 10])
            self.assertEqual(reloaded.list_checkpoints(), {})
        finally:
            reloaded.close()

    def test_page_error_retried_on_same_cursor(self):
        """默认在同一游标上重试"""
        pages = three_pages()
        pages[20] = [RuntimeError("503"), RuntimeError("503"), pages[20]]
        self.client.timeline = FakeFeed(pages)
        crawler = self.make_crawler()

        stats = asyncio.run(crawler.crawl())
        self.assertEqual(self.client.timeline.calls, [None, 29, 20, 20, 20, 10])
        self.assertEqual(stats["page_errors"], 2)
        self.assertEqual(len(self.ctx.storage.data.tweets), 4)

    def test_rate_limit_wait_after_page(self):
        """配额将尽时在请求下一页前等待"""
        pages = three_pages()
        pages[29] = make_page([make_tweet(20)], next_cursor=20, remaining=1)
        self.client.timeline = FakeFeed(pages)
        crawler = self.make_crawler()

        asyncio.run(crawler.crawl())
        self.assertEqual(self.ctx.rate_limiter.stats["waits"], 1)
        self.ctx.rate_limiter._sleep.assert_awaited_once()

    def test_media_of_each_tweet_is_queued(self):
        self.client.timeline = FakeFeed({
            None: make_page([make_tweet(5, images=["https://pbs.twimg.com/media/5.jpg"])], next_cursor=5),
        })
        crawler = self.make_crawler()
        asyncio.run(crawler.crawl())
        self.assertEqual(self.ctx.send.urls, ["https://pbs.twimg.com/media/5.jpg"])


class TestUserMentionsCrawler(unittest.TestCase):

    def test_mentions_collection(self):
        client = FakeTwitterClient()
        client.mentions = FakeFeed({None: make_page([make_tweet(8, user_id=3)], next_cursor=8)})
        ctx = make_context(make_config(tweet_profiles=False), client=client)
        try:
            asyncio.run(UserMentionsCrawler(ctx).crawl())
            self.assertEqual([t.id for t in ctx.storage.data.mentions], [8])
            self.assertEqual(ctx.storage.data.tweets, [])
            self.assertFalse(ctx.checkpoints.exists(CheckpointKey(ResourceKind.USER_MENTIONS)))
        finally:
            ctx.storage.close()


if __name__ == "__main__":
    unittest.main()
