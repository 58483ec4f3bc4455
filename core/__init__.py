"""
核心模块

包含基础组件：
- models: 数据模型（推文、用户、列表、归档聚合体）
- storage: 归档存储（SQLite + 锁保护的聚合体）
- checkpoint: 检查点管理器（断点续传）
- rate_limit: 限流器
- downloader: 下载指令与下载 worker
- progress: 进度事件
- twitter_api: 上游 API 客户端
"""
from .storage import Storage
from .checkpoint import CheckpointKey, CheckpointManager, ResourceKind
from .rate_limit import RateLimiter
from .downloader import DownloadWorker, Image, Movie, ProfileMedia, Done, DONE
from .progress import Loading, Finished, Error, ProgressChannel
from .twitter_api import TwitterClient, TwitterAPIError

__all__ = [
    'Storage',
    'CheckpointKey',
    'CheckpointManager',
    'ResourceKind',
    'RateLimiter',
    'DownloadWorker',
    'Image',
    'Movie',
    'ProfileMedia',
    'Done',
    'DONE',
    'Loading',
    'Finished',
    'Error',
    'ProgressChannel',
    'TwitterClient',
    'TwitterAPIError',
]
