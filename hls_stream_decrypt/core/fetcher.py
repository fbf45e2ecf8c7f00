"""
片段获取模块 - 下载密钥与密文片段，边下载边解密
"""
import os
import time
import queue
from contextlib import closing
from typing import Callable, Dict, Iterable, Iterator, List, Optional

import requests

try:
    from .cbc_key import CbcKey, USAGES, import_key
    from .decryptor import decrypt_stream
    from .playlist import is_master_playlist, parse_master_playlist, parse_media_playlist, segment_iv
    from .utils import DEFAULT_CHUNK_SIZE, ensure_dir_exists, human_size
except ImportError:
    from hls_stream_decrypt.core.cbc_key import CbcKey, USAGES, import_key
    from hls_stream_decrypt.core.decryptor import decrypt_stream
    from hls_stream_decrypt.core.playlist import is_master_playlist, parse_master_playlist, parse_media_playlist, segment_iv
    from hls_stream_decrypt.core.utils import DEFAULT_CHUNK_SIZE, ensure_dir_exists, human_size

DEFAULT_TIMEOUT = 30
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY = 1.0
DEFAULT_HEADERS = {
    'User-Agent': 'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0 Safari/537.36',
    'Accept': '*/*',
    'Connection': 'keep-alive',
}


class SegmentFetcher:
    def __init__(
        self,
        session: Optional[requests.Session] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
    ) -> None:
        if session is None:
            session = requests.Session()
            session.headers.update(DEFAULT_HEADERS)
        self.session = session
        self.chunk_size = chunk_size
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.is_canceled = False
        self.log_queue: "queue.Queue[str]" = queue.Queue()
        self._keys: Dict[str, CbcKey] = {}

    # ---- 日志 ----
    def log(self, msg: str) -> None:
        self.log_queue.put(msg)

    def get_logs(self) -> List[str]:
        logs: List[str] = []
        while not self.log_queue.empty():
            try:
                logs.append(self.log_queue.get_nowait())
            except queue.Empty:
                break
        return logs

    # ---- 请求 ----
    def _open(self, url: str, stream: bool = False, retry: int = 0) -> requests.Response:
        """发起请求，失败时递增延迟重试"""
        try:
            response = self.session.get(url, timeout=self.timeout, stream=stream)
            response.raise_for_status()
            return response
        except requests.RequestException as e:
            if retry < self.max_retries and not self.is_canceled:
                self.log(f"请求失败: {url}, 错误: {e} - 重试 ({retry + 1}/{self.max_retries})")
                time.sleep(self.retry_delay * (retry + 1))
                return self._open(url, stream, retry + 1)
            self.log(f"请求失败: {url}, 错误: {e}")
            raise

    def fetch_text(self, url: str) -> str:
        response = self._open(url)
        response.encoding = 'utf-8'
        return response.text

    def fetch_key(self, url: str, usages: Iterable[str] = USAGES) -> CbcKey:
        """获取原始密钥并导入，同一 URI 只下载一次"""
        if url in self._keys:
            return self._keys[url]
        raw = self._open(url).content
        key = import_key(raw, usages)
        self._keys[url] = key
        self.log(f"成功获取解密密钥 ({key.length} 位)")
        return key

    def iter_ciphertext(self, url: str) -> Iterator[bytes]:
        """以流的方式读取密文；开始读取后出错不再重试"""
        response = self._open(url, stream=True)
        try:
            for chunk in response.iter_content(chunk_size=self.chunk_size):
                if chunk:
                    yield chunk
        finally:
            response.close()

    # ---- 解密 ----
    def decrypt_segment(self, url: str, key: CbcKey, iv: bytes) -> Iterator[bytes]:
        return decrypt_stream(key, iv, self.iter_ciphertext(url))

    def reference_decrypt(self, url: str, key: CbcKey, iv: bytes) -> bytes:
        """一次性下载并解密，用于对照"""
        return key.decrypt(iv, self._open(url).content)

    def verify(self, url: str, key: CbcKey, iv: bytes) -> bool:
        """比较一次性解密与流式解密的结果"""
        reference = self.reference_decrypt(url, key, iv)
        streamed = b''.join(self.decrypt_segment(url, key, iv))
        if reference == streamed:
            self.log(f"校验通过: {human_size(len(reference))}")
            return True
        self.log(f"校验失败: 一次性解密 {len(reference)} 字节，流式解密 {len(streamed)} 字节")
        return False

    def save_segment(self, url: str, key: Optional[CbcKey], iv: Optional[bytes], output_file: str, append: bool = False) -> int:
        """边下载边解密写入文件，返回写入的字节数；key 为 None 时直接写入原始数据"""
        ensure_dir_exists(os.path.dirname(os.path.abspath(output_file)))
        if key is None:
            fragments = self.iter_ciphertext(url)
        else:
            fragments = self.decrypt_segment(url, key, iv)

        written = 0
        with closing(fragments), open(output_file, 'ab' if append else 'wb') as f:
            for fragment in fragments:
                f.write(fragment)
                written += len(fragment)
        return written

    # ---- 播放列表 ----
    def resolve_playlist(self, url: str) -> Dict:
        """解析播放列表，主播放列表时选择质量最高的子流"""
        self.log(f"开始解析 M3U8: {url}")
        content = self.fetch_text(url)
        if is_master_playlist(content):
            self.log("检测到主播放列表，寻找最佳质量...")
            best = parse_master_playlist(content, url)[0]
            self.log(f"选择流: 分辨率={best['width']}x{best['height']}, 带宽={best['bandwidth']}")
            return self.resolve_playlist(best['url'])

        info = parse_media_playlist(content, url)
        self.log(f"找到 {len(info['segments'])} 个片段，总时长约 {info['duration']:.1f} 秒")
        return info

    def download(self, playlist_url: str, output_file: str, progress_callback: Optional[Callable[[int, str], None]] = None) -> int:
        """按顺序下载全部片段，解密后拼接到 output_file，返回写入的字节数"""
        self.is_canceled = False
        info = self.resolve_playlist(playlist_url)
        segments = info['segments']
        total = len(segments)
        if info['encrypted']:
            self.log("检测到 AES-128 加密")

        written = 0
        for index, segment in enumerate(segments):
            if self.is_canceled:
                self.log("下载被用户取消")
                break

            key_info = segment['key']
            key = iv = None
            if key_info:
                key = self.fetch_key(key_info['uri'])
                iv = segment_iv(key_info, segment['sequence'])

            self.log(f"下载片段: {index + 1}/{total}")
            written += self.save_segment(segment['url'], key, iv, output_file, append=index > 0)
            if progress_callback:
                progress_callback(int(100 * (index + 1) / total), f"下载进度: {index + 1}/{total}")

        self.log(f"输出文件: {output_file} ({human_size(written)})")
        return written

    def cancel(self) -> None:
        """取消下载任务，在当前片段完成后生效"""
        self.is_canceled = True
        self.log('🛑 用户请求取消下载')
