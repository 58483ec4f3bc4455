"""
数据模型

上游 API 记录（推文、用户、列表）以及归档聚合体 CrawlAggregate。
上游记录允许额外字段，未建模的属性会原样保存在归档中。
"""
from typing import Any, Dict, List, Optional, Union
import time

from pydantic import BaseModel, ConfigDict, Field


class UpstreamRecord(BaseModel):
    """上游定义的记录：保留所有未声明的字段"""
    model_config = ConfigDict(extra="allow")


# ============================================================================
# 用户 / 媒体 / 推文
# ============================================================================

class Profile(UpstreamRecord):
    """用户资料（以数字 id 为键）"""
    id: int
    screen_name: str = ""
    name: str = ""
    profile_image_url_https: str = ""
    profile_banner_url: Optional[str] = None
    profile_background_image_url_https: Optional[str] = None

    def media_urls(self) -> List[str]:
        """资料相关的图片：背景、横幅、头像"""
        urls = []
        if self.profile_background_image_url_https:
            urls.append(self.profile_background_image_url_https)
        if self.profile_banner_url:
            urls.append(self.profile_banner_url)
        if self.profile_image_url_https:
            urls.append(self.profile_image_url_https)
        return urls


class VideoVariant(UpstreamRecord):
    content_type: str = ""
    url: str
    bitrate: Optional[int] = None

    @property
    def subtype(self) -> str:
        """MIME 子类型（video/mp4 -> mp4）"""
        return self.content_type.split("/")[-1].split(";")[0].strip().lower()


class VideoInfo(UpstreamRecord):
    variants: List[VideoVariant] = Field(default_factory=list)


class MediaEntity(UpstreamRecord):
    media_url_https: str = ""
    type: str = "photo"
    video_info: Optional[VideoInfo] = None


class Entities(UpstreamRecord):
    media: List[MediaEntity] = Field(default_factory=list)


class Tweet(UpstreamRecord):
    """
    推文

    最多内嵌一条引用推文和一条被转推的原推（只有一层，不会继续嵌套）。
    """
    id: int
    full_text: Optional[str] = None
    user: Optional[Profile] = None
    in_reply_to_status_id: Optional[int] = None
    extended_entities: Optional[Entities] = None
    quoted_status: Optional["Tweet"] = None
    retweeted_status: Optional["Tweet"] = None

    @property
    def media(self) -> List[MediaEntity]:
        if self.extended_entities is None:
            return []
        return self.extended_entities.media


Tweet.model_rebuild()


# ============================================================================
# 列表
# ============================================================================

class TwitterList(UpstreamRecord):
    id: int
    name: str = ""
    full_name: str = ""
    slug: str = ""
    member_count: int = 0


class ListRecord(BaseModel):
    """列表元数据 + 成员 id（成员抓取完成后一次性创建）"""
    name: str
    list: TwitterList
    members: List[int] = Field(default_factory=list)


# ============================================================================
# 分页 / 限流
# ============================================================================

class RateLimitStatus(BaseModel):
    """上游配额状态（不持久化）"""
    remaining: int = 0
    limit: int = 0
    reset: int = 0

    @classmethod
    def from_headers(cls, headers) -> "RateLimitStatus":
        """
        从响应头解析配额状态

        缺失或无法解析的头视为配额充足（remaining = limit = 大值）。
        """
        def _int(name: str, default: int) -> int:
            value = headers.get(name)
            try:
                return int(str(value).strip()) if value is not None else default
            except ValueError:
                return default

        unlimited = 1 << 30
        return cls(
            remaining=_int("x-rate-limit-remaining", unlimited),
            limit=_int("x-rate-limit-limit", unlimited),
            reset=_int("x-rate-limit-reset", int(time.time())),
        )


Cursor = Union[int, str]


class Page(BaseModel):
    """
    一页上游数据

    Attributes:
        items: 本页条目（推文、用户、列表或 id）
        next_cursor: 下一页游标（时间线为最小 id，其他为 64 位有符号游标）
        rate_limit: 本次调用的配额状态
    """
    items: List[Any] = Field(default_factory=list)
    next_cursor: Optional[Cursor] = None
    rate_limit: RateLimitStatus = Field(default_factory=RateLimitStatus)


# ============================================================================
# 归档聚合体
# ============================================================================

class CrawlAggregate(BaseModel):
    """归档的全部内容（由 Storage 独占持有）"""
    profile: Optional[Profile] = None
    tweets: List[Tweet] = Field(default_factory=list)
    mentions: List[Tweet] = Field(default_factory=list)
    followers: List[int] = Field(default_factory=list)
    follows: List[int] = Field(default_factory=list)
    lists: List[ListRecord] = Field(default_factory=list)
    profiles: Dict[int, Profile] = Field(default_factory=dict)
    media: Dict[str, str] = Field(default_factory=dict)
    responses: Dict[int, List[Tweet]] = Field(default_factory=dict)
