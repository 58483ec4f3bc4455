"""
配置管理模块 - Twitter 账号归档
统一配置管理：账号身份、抓取开关、爬虫参数、媒体与数据库路径
"""
from pydantic import BaseModel, Field
from typing import Optional, Dict, Any
import os
import json
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

# 项目根目录
BASE_DIR = Path(__file__).parent
ARCHIVE_DIR = Path(os.getenv("ARCHIVE_DIR", str(BASE_DIR / "archive")))


class AccountConfig(BaseModel):
    """归档账号（唯一的 owner 身份）"""
    user_id: int = Field(default=0, description="账号数字 ID")
    screen_name: str = Field(default="", description="账号 handle（不含 @）")
    bearer_token: Optional[str] = Field(default=None, description="API 认证凭据")
    api_base_url: str = Field(default="https://api.twitter.com/1.1", description="API 基础URL")


class CrawlOptions(BaseModel):
    """抓取开关：决定运行哪些阶段/行为"""
    tweets: bool = Field(default=True, description="抓取自己的推文")
    mentions: bool = Field(default=True, description="抓取提及")
    followers: bool = Field(default=True, description="抓取粉丝")
    follows: bool = Field(default=True, description="抓取关注")
    lists: bool = Field(default=True, description="抓取列表及成员")
    tweet_profiles: bool = Field(default=True, description="抓取推文作者资料")
    tweet_responses: bool = Field(default=False, description="搜索自己推文的回复")
    media: bool = Field(default=True, description="下载媒体文件")


class CrawlerConfig(BaseModel):
    """爬虫配置"""
    request_timeout: int = Field(default=30, description="请求超时时间")
    download_queue_size: int = Field(default=4096, description="下载指令队列容量")

    # 分页失败重试（默认：同一游标无限重试，无退避）
    page_retry_delay: float = Field(default=0.0, description="分页失败后的重试间隔（秒）")
    max_page_retries: Optional[int] = Field(default=None, description="分页最大重试次数，None 表示不限制")

    # 限流
    rate_limit_grace: int = Field(default=10, description="限流重置后的额外等待（秒）")
    rate_limit_fallback_sleep: int = Field(default=1000, description="无法读取当前时间时的等待（秒）")

    # User-Agent配置
    rotate_user_agent: bool = Field(default=True, description="是否轮换UA")


class MediaConfig(BaseModel):
    """媒体配置"""
    media_dir: Path = Field(default=ARCHIVE_DIR / "media", description="媒体目录")
    default_extension: str = Field(default="png", description="无法推断扩展名时的默认值")


class DatabaseConfig(BaseModel):
    """数据库配置"""
    sqlite_path: Path = Field(default=ARCHIVE_DIR / "archive.db", description="SQLite 归档文件")


class LogConfig(BaseModel):
    """日志配置"""
    log_level: str = Field(default="INFO", description="日志级别")
    log_dir: Path = Field(default=BASE_DIR / "logs", description="日志目录")
    log_file: str = Field(default="vault.log", description="日志文件名")
    rotation: str = Field(default="100 MB", description="日志轮转大小")
    retention: str = Field(default="30 days", description="日志保留时间")


class Config(BaseModel):
    """全局配置"""
    account: AccountConfig = Field(default_factory=AccountConfig)
    crawl: CrawlOptions = Field(default_factory=CrawlOptions)
    crawler: CrawlerConfig = Field(default_factory=CrawlerConfig)
    media: MediaConfig = Field(default_factory=MediaConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    log: LogConfig = Field(default_factory=LogConfig)

    def create_directories(self):
        """创建必要的目录"""
        self.media.media_dir.mkdir(parents=True, exist_ok=True)
        self.database.sqlite_path.parent.mkdir(parents=True, exist_ok=True)
        self.log.log_dir.mkdir(parents=True, exist_ok=True)


# ============================================================================
# 配置文件加载
# ============================================================================

def load_config_file(config_file: Path) -> Dict[str, Any]:
    """
    加载 JSON 配置文件

    Raises:
        FileNotFoundError: 配置文件不存在
        json.JSONDecodeError: JSON格式错误
    """
    with open(config_file, 'r', encoding='utf-8') as f:
        return json.load(f)


def create_config_from_dict(data: Dict[str, Any]) -> Config:
    """
    从字典创建Config对象

    未出现的小节使用默认值；"account" 中缺少的凭据回退到环境变量。

    Args:
        data: 配置字典

    Returns:
        Config实例
    """
    env = load_config_from_env()
    account = {**env.account.model_dump(), **data.get("account", {})}
    return Config(
        account=account,
        crawl=data.get("crawl", {}),
        crawler=data.get("crawler", {}),
        media=data.get("media", env.media.model_dump()),
        database=data.get("database", env.database.model_dump()),
        log=data.get("log", env.log.model_dump()),
    )


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# 从环境变量加载配置
def load_config_from_env() -> Config:
    """从环境变量加载配置"""
    archive_dir = Path(os.getenv("ARCHIVE_DIR", str(ARCHIVE_DIR)))
    defaults = CrawlOptions()
    config_data = {
        "account": {
            "user_id": int(os.getenv("TWITTER_USER_ID", "0") or 0),
            "screen_name": os.getenv("TWITTER_SCREEN_NAME", ""),
            "bearer_token": os.getenv("TWITTER_BEARER_TOKEN"),
            "api_base_url": os.getenv("TWITTER_API_BASE_URL", "https://api.twitter.com/1.1"),
        },
        "crawl": {
            name: _env_flag(f"CRAWL_{name.upper()}", getattr(defaults, name))
            for name in CrawlOptions.model_fields
        },
        "crawler": {
            "page_retry_delay": float(os.getenv("PAGE_RETRY_DELAY", "0")),
            "download_queue_size": int(os.getenv("DOWNLOAD_QUEUE_SIZE", "4096")),
        },
        "media": {
            "media_dir": archive_dir / "media",
        },
        "database": {
            "sqlite_path": archive_dir / "archive.db",
        },
        "log": {
            "log_level": os.getenv("LOG_LEVEL", "INFO"),
        }
    }
    return Config(**config_data)


# 全局配置实例（默认从环境变量加载）
config = load_config_from_env()
