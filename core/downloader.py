"""
媒体下载模块

下载指令（封闭的标签联合）+ 单消费者下载 worker：
- 有界队列提供背压，生产者在队列满时挂起
- 以 URL 去重（聚合体 media 映射是唯一依据）
- 单条失败只记日志，worker 继续处理下一条
"""
import asyncio
import hashlib
from pathlib import PurePosixPath
from typing import Dict, Optional, Union
from urllib.parse import urlparse

import aiohttp
from fake_useragent import UserAgent
from loguru import logger
from pydantic import BaseModel, ConfigDict
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from config import Config
from core.storage import Storage


# ============================================================================
# 下载指令
# ============================================================================

class _Instruction(BaseModel):
    model_config = ConfigDict(frozen=True)


class Image(_Instruction):
    """推文图片"""
    url: str


class Movie(_Instruction):
    """推文视频（content_type 为所选变体的 MIME 类型）"""
    content_type: str
    url: str


class ProfileMedia(_Instruction):
    """头像 / 横幅 / 背景图"""
    url: str


class Done(_Instruction):
    """终止哨兵：worker 收到后退出循环"""


DONE = Done()

DownloadInstruction = Union[Image, Movie, ProfileMedia, Done]

# 已知视频容器子类型 -> 扩展名
VIDEO_EXTENSIONS = {
    "mp4": "mp4",
    "avi": "avi",
    "3gp": "3gp",
    "mov": "mov",
}


def extension_for_url(url: str, default: str = "png") -> str:
    """从 URL 路径的最后一段推断扩展名"""
    try:
        path = urlparse(url).path
    except ValueError:
        return default
    suffix = PurePosixPath(path).suffix
    if not suffix or suffix == ".":
        return default
    return suffix[1:]


def extension_for_instruction(instruction: DownloadInstruction, default: str = "png") -> str:
    """确定目标文件扩展名"""
    if isinstance(instruction, Movie):
        subtype = instruction.content_type.split("/")[-1].split(";")[0].strip().lower()
        if subtype in VIDEO_EXTENSIONS:
            return VIDEO_EXTENSIONS[subtype]
    return extension_for_url(instruction.url, default)


def media_filename(url: str, extension: str) -> str:
    """稳定的文件名：URL 的 64 位哈希 + 扩展名（同一 URL 跨运行得到同一文件名）"""
    return f"{hashlib.md5(url.encode()).hexdigest()[:16]}.{extension}"


class DownloadQueueClosed(Exception):
    """下载 worker 已退出，无法再投递指令"""


class MediaDownloadError(Exception):
    """媒体请求返回非 200"""


# ============================================================================
# 下载 worker
# ============================================================================

class DownloadWorker:
    """
    下载 worker（单消费者）

    Example:
        worker = DownloadWorker(storage, config)
        worker.start()
        await worker.submit(Image(url="https://pbs.twimg.com/media/x.jpg"))
        await worker.finish()
    """

    def __init__(self, storage: Storage, config: Config, queue_size: Optional[int] = None):
        self.storage = storage
        self.config = config
        self.enabled = config.crawl.media
        self.default_extension = config.media.default_extension
        self.queue: "asyncio.Queue[DownloadInstruction]" = asyncio.Queue(
            maxsize=queue_size or config.crawler.download_queue_size
        )
        self.ua = UserAgent()
        self.session: Optional[aiohttp.ClientSession] = None
        self._owns_session = False
        self._task: Optional[asyncio.Task] = None
        self.download_stats = {
            "total": 0,
            "success": 0,
            "failed": 0,
            "skipped": 0,
            "discarded": 0,
        }

    async def __aenter__(self):
        """异步上下文管理器入口"""
        self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """异步上下文管理器出口"""
        if exc_type is None:
            await self.finish()
        else:
            await self.abort()

    async def init_session(self):
        """初始化HTTP会话"""
        if self.session is not None:
            return
        timeout = aiohttp.ClientTimeout(total=self.config.crawler.request_timeout)
        self.session = aiohttp.ClientSession(timeout=timeout)
        self._owns_session = True
        logger.info("Media downloader initialized")

    async def close(self):
        """关闭会话"""
        if self.session and self._owns_session:
            await self.session.close()
            self.session = None
        logger.info("Download stats: {}", self.download_stats)

    def get_headers(self) -> Dict[str, str]:
        """获取请求头"""
        return {
            "User-Agent": self.ua.random if self.config.crawler.rotate_user_agent else self.ua.chrome,
            "Accept": "image/webp,image/apng,image/*,video/*,*/*;q=0.8",
        }

    # ==================== 生命周期 ====================

    def start(self) -> asyncio.Task:
        """启动消费者任务"""
        if self._task is None:
            self._task = asyncio.create_task(self.run())
        return self._task

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def submit(self, instruction: DownloadInstruction):
        """
        投递指令（队列满时挂起）

        Raises:
            DownloadQueueClosed: worker 已退出
        """
        if self._task is None:
            await self.queue.put(instruction)
            return
        if self._task.done():
            raise DownloadQueueClosed(f"download worker has exited, dropped {instruction!r}")

        # 队列满时挂起，期间 worker 退出也要返回
        put = asyncio.ensure_future(self.queue.put(instruction))
        try:
            done, _ = await asyncio.wait({put, self._task}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            put.cancel()
            raise
        if put not in done:
            put.cancel()
            raise DownloadQueueClosed(f"download worker has exited, dropped {instruction!r}")

    async def finish(self):
        """发送 Done 并等待 worker 处理完队列后退出"""
        if self._task is None:
            await self.close()
            return
        if not self._task.done():
            await self.queue.put(DONE)
        await self._task

    async def abort(self):
        """取消 worker（运行中止时使用）"""
        if self._task is None:
            await self.close()
            return
        if not self._task.done():
            self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass

    # ==================== 消费循环 ====================

    async def run(self):
        """消费循环：直到收到 Done"""
        await self.init_session()
        try:
            while True:
                instruction = await self.queue.get()
                try:
                    if isinstance(instruction, Done):
                        break
                    if not self.enabled:
                        # 仍然出队，避免阻塞生产者
                        self.download_stats["discarded"] += 1
                        continue
                    try:
                        await self.handle_instruction(instruction)
                    except Exception as e:
                        self.download_stats["failed"] += 1
                        logger.warning("Download error {}: {}", instruction.url, e)
                finally:
                    self.queue.task_done()
        finally:
            await self.close()

    async def handle_instruction(self, instruction: DownloadInstruction) -> Optional[str]:
        """
        处理单条指令

        Returns:
            保存路径；已下载过返回 None
        """
        if isinstance(instruction, Done):
            return None

        url = instruction.url
        extension = extension_for_instruction(instruction, self.default_extension)
        if await self.storage.with_data(lambda data: url in data.media):
            self.download_stats["skipped"] += 1
            logger.trace("Already downloaded: {}", url)
            return None

        self.download_stats["total"] += 1
        path = self.storage.media_path(media_filename(url, extension))
        content = await self.fetch_bytes(url)
        with open(path, "wb") as f:
            f.write(content)

        async with self.storage.mutate() as data:
            data.media[url] = str(path)

        self.download_stats["success"] += 1
        logger.debug("Downloaded: {} ({} bytes)", path.name, len(content))
        return str(path)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(aiohttp.ClientError),
        reraise=True,
    )
    async def fetch_bytes(self, url: str) -> bytes:
        """获取媒体内容（网络错误重试 3 次）"""
        async with self.session.get(url, headers=self.get_headers()) as response:
            if response.status != 200:
                raise MediaDownloadError(f"HTTP {response.status}")
            return await response.read()

    def get_stats(self) -> Dict[str, int]:
        """获取下载统计"""
        return self.download_stats.copy()
