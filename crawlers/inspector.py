"""
推文检查器

对一条推文：检查自身内容、引用推文、被转推的原推（固定的一层嵌入槽位），
并可选地通过搜索发现对自己推文的回复。每一步的失败只记录日志，不影响其他步骤。
"""
from typing import TYPE_CHECKING, List, Optional

from loguru import logger

from core.downloader import DownloadInstruction, Image, Movie
from core.models import Tweet, VideoVariant

if TYPE_CHECKING:
    from crawlers.base import CrawlContext

# 规范视频格式（content_type 子类型）
CANONICAL_VIDEO_SUBTYPE = "mp4"
REPLY_PAGE_SIZE = 50


def select_variant(variants: List[VideoVariant]) -> Optional[VideoVariant]:
    """
    选择码率最高的 mp4 变体

    只有严格更高的码率才替换当前选择，码率相同时保留先出现的变体。
    没有 mp4 变体时使用第一个变体。
    """
    selected = None
    for variant in variants:
        if variant.subtype != CANONICAL_VIDEO_SUBTYPE:
            continue
        if selected is None or (variant.bitrate or 0) > (selected.bitrate or 0):
            selected = variant
    if selected is None and variants:
        selected = variants[0]
    return selected


def media_instructions(tweet: Tweet) -> List[DownloadInstruction]:
    """推文附带媒体对应的下载指令"""
    instructions = []
    for media in tweet.media:
        if media.video_info is not None and media.video_info.variants:
            variant = select_variant(media.video_info.variants)
            instructions.append(Movie(content_type=variant.content_type, url=variant.url))
        elif media.media_url_https:
            instructions.append(Image(url=media.media_url_https))
    return instructions


class TweetInspector:
    """推文检查器"""

    def __init__(self, ctx: "CrawlContext"):
        self.ctx = ctx
        self.options = ctx.config.crawl
        self.stats = {
            "inspected": 0,
            "media_queued": 0,
            "replies_found": 0,
        }

    def is_owned(self, tweet: Tweet) -> bool:
        """作者是归档账号（无法确定作者时视为自己）"""
        return tweet.user is None or tweet.user.id == self.ctx.owner_id

    async def inspect(self, tweet: Tweet):
        """检查推文及其嵌入推文，并按需发现回复"""
        try:
            await self.inspect_content(tweet)
        except Exception as e:
            logger.warning("Inspect tweet error {}: {}", tweet.id, e)

        for label, embedded in (("quoted", tweet.quoted_status), ("retweeted", tweet.retweeted_status)):
            if embedded is None:
                continue
            try:
                await self.inspect_content(embedded)
            except Exception as e:
                logger.warning("Inspect {} tweet error {}: {}", label, embedded.id, e)

        if self.options.tweet_responses and self.is_owned(tweet):
            try:
                await self.fetch_replies(tweet)
            except Exception as e:
                logger.warning("Could not fetch replies for tweet {}: {}", tweet.id, e)

    async def inspect_content(self, tweet: Tweet):
        """检查单条推文内容：作者资料 + 媒体"""
        self.stats["inspected"] += 1
        if self.options.tweet_profiles and tweet.user is not None and tweet.user.id != self.ctx.owner_id:
            try:
                await self.ctx.profiles.fetch(tweet.user.id)
            except Exception as e:
                logger.warning("Could not download profile {}: {}", tweet.user.id, e)

        for instruction in media_instructions(tweet):
            try:
                await self.ctx.send(instruction)
                self.stats["media_queued"] += 1
            except Exception as e:
                logger.warning("Send error {}: {}", instruction.url, e)

    async def fetch_replies(self, tweet: Tweet) -> List[Tweet]:
        """
        搜索发给归档账号、且回复这条推文的推文

        结果以推文 id 为键写入 responses（替换已有记录）。
        """
        query = f"to:{self.ctx.config.account.screen_name}"
        page = await self.ctx.client.search_tweets(query, since_id=tweet.id, count=REPLY_PAGE_SIZE)
        await self.ctx.rate_limiter.wait(page.rate_limit, "Tweet Replies")

        replies = []
        for related in page.items:
            if related.in_reply_to_status_id != tweet.id:
                continue
            try:
                await self.inspect_content(related)
            except Exception as e:
                logger.warning("Could not inspect tweet {}: {}", related.id, e)
            replies.append(related)

        async with self.ctx.storage.mutate() as data:
            data.responses[tweet.id] = replies
        self.stats["replies_found"] += len(replies)
        return replies
