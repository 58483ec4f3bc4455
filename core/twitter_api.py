"""
Twitter API 客户端（aiohttp）

只实现归档需要的几个 v1.1 分页接口。每次调用返回 Page：
条目 + 下一页游标 + 从响应头解析的配额状态。
"""
from typing import Any, Dict, List, Optional, Sequence, Tuple

import aiohttp
from loguru import logger

from config import Config
from core.models import Page, Profile, RateLimitStatus, Tweet, TwitterList


class TwitterAPIError(Exception):
    """上游返回非 200"""

    def __init__(self, status: int, message: str, rate_limit: Optional[RateLimitStatus] = None):
        super().__init__(f"HTTP {status}: {message}")
        self.status = status
        self.message = message
        self.rate_limit = rate_limit


class TwitterClient:
    """
    上游 API 客户端

    Example:
        async with TwitterClient(config) as client:
            page = await client.followers_ids(user_id, cursor=-1, count=50)
    """

    def __init__(self, config: Config):
        self.config = config
        self.base_url = config.account.api_base_url.rstrip("/")
        self.session: Optional[aiohttp.ClientSession] = None
        self.stats = {
            "calls": 0,
            "errors": 0,
        }

    async def __aenter__(self):
        """异步上下文管理器入口"""
        await self.init_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """异步上下文管理器出口"""
        await self.close()

    async def init_session(self):
        """初始化HTTP会话"""
        timeout = aiohttp.ClientTimeout(total=self.config.crawler.request_timeout)
        self.session = aiohttp.ClientSession(timeout=timeout, headers=self.get_headers())
        logger.debug("Twitter client session created")

    async def close(self):
        """关闭会话"""
        if self.session:
            await self.session.close()
            self.session = None
            logger.debug("Twitter client stats: {}", self.stats)

    def get_headers(self) -> Dict[str, str]:
        """获取请求头（bearer 凭据）"""
        headers = {"Accept": "application/json"}
        if self.config.account.bearer_token:
            headers["Authorization"] = f"Bearer {self.config.account.bearer_token}"
        return headers

    async def _get(self, endpoint: str, params: Dict[str, Any]) -> Tuple[Any, RateLimitStatus]:
        """
        GET 请求

        Returns:
            (JSON 响应, 配额状态)

        Raises:
            TwitterAPIError: 非 200 响应
        """
        url = f"{self.base_url}/{endpoint}.json"
        query = {key: str(value) for key, value in params.items() if value is not None}
        self.stats["calls"] += 1
        logger.trace("GET {} {}", endpoint, query)
        async with self.session.get(url, params=query) as response:
            rate_limit = RateLimitStatus.from_headers(response.headers)
            if response.status != 200:
                self.stats["errors"] += 1
                body = await response.text()
                raise TwitterAPIError(response.status, body[:200], rate_limit)
            return await response.json(), rate_limit

    # ==================== 时间线（max_id 水位分页） ====================

    @staticmethod
    def _max_id(min_id: Optional[int]) -> Optional[int]:
        """上一页最小 id -> 下一页 max_id（不含上一页）"""
        return int(min_id) - 1 if min_id is not None else None

    @staticmethod
    def _timeline_page(payload: List[Dict[str, Any]], rate_limit: RateLimitStatus) -> Page:
        tweets = [Tweet.model_validate(item) for item in payload]
        min_id = min((tweet.id for tweet in tweets), default=None)
        return Page(items=tweets, next_cursor=min_id, rate_limit=rate_limit)

    async def user_timeline(self, user_id: int, count: int = 50, min_id: Optional[int] = None) -> Page:
        """用户推文（含回复与转推），返回早于 min_id 的一页"""
        payload, rate_limit = await self._get("statuses/user_timeline", {
            "user_id": user_id,
            "count": count,
            "max_id": self._max_id(min_id),
            "include_rts": "true",
            "exclude_replies": "false",
            "tweet_mode": "extended",
        })
        return self._timeline_page(payload, rate_limit)

    async def mentions_timeline(self, count: int = 50, min_id: Optional[int] = None) -> Page:
        """提及时间线，返回早于 min_id 的一页"""
        payload, rate_limit = await self._get("statuses/mentions_timeline", {
            "count": count,
            "max_id": self._max_id(min_id),
            "tweet_mode": "extended",
        })
        return self._timeline_page(payload, rate_limit)

    # ==================== id / 列表（64 位游标分页） ====================

    async def _ids(self, endpoint: str, user_id: int, cursor: int, count: int) -> Page:
        payload, rate_limit = await self._get(endpoint, {
            "user_id": user_id,
            "cursor": cursor,
            "count": count,
        })
        return Page(
            items=[int(i) for i in payload.get("ids", [])],
            next_cursor=payload.get("next_cursor"),
            rate_limit=rate_limit,
        )

    async def followers_ids(self, user_id: int, cursor: int = -1, count: int = 50) -> Page:
        return await self._ids("followers/ids", user_id, cursor, count)

    async def friends_ids(self, user_id: int, cursor: int = -1, count: int = 50) -> Page:
        return await self._ids("friends/ids", user_id, cursor, count)

    async def list_ownerships(self, user_id: int, cursor: int = -1, count: int = 500) -> Page:
        payload, rate_limit = await self._get("lists/ownerships", {
            "user_id": user_id,
            "cursor": cursor,
            "count": count,
        })
        return Page(
            items=[TwitterList.model_validate(item) for item in payload.get("lists", [])],
            next_cursor=payload.get("next_cursor"),
            rate_limit=rate_limit,
        )

    async def list_members(self, list_id: int, cursor: int = -1, count: int = 2000) -> Page:
        payload, rate_limit = await self._get("lists/members", {
            "list_id": list_id,
            "cursor": cursor,
            "count": count,
            "skip_status": "true",
        })
        return Page(
            items=[Profile.model_validate(item) for item in payload.get("users", [])],
            next_cursor=payload.get("next_cursor"),
            rate_limit=rate_limit,
        )

    # ==================== 用户 / 搜索 ====================

    async def users_lookup(self, user_ids: Sequence[int]) -> List[Profile]:
        """批量获取用户资料（一次调用）"""
        if not user_ids:
            return []
        payload, _ = await self._get("users/lookup", {
            "user_id": ",".join(str(i) for i in user_ids),
        })
        return [Profile.model_validate(item) for item in payload]

    async def users_show(self, user_id: Optional[int] = None, screen_name: Optional[str] = None) -> Profile:
        """获取单个用户资料"""
        if user_id is None and not screen_name:
            raise ValueError("users_show needs a user id or a screen name")
        payload, _ = await self._get("users/show", {
            "user_id": user_id,
            "screen_name": screen_name if user_id is None else None,
        })
        return Profile.model_validate(payload)

    async def search_tweets(self, query: str, since_id: Optional[int] = None, count: int = 50) -> Page:
        """搜索推文（只返回 id >= since_id 之后发布的推文）"""
        payload, rate_limit = await self._get("search/tweets", {
            "q": query,
            "since_id": since_id,
            "count": count,
            "result_type": "recent",
            "tweet_mode": "extended",
        })
        statuses = payload.get("statuses", [])
        return Page(
            items=[Tweet.model_validate(item) for item in statuses],
            next_cursor=None,
            rate_limit=rate_limit,
        )
