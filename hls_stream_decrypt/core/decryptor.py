"""
解密模块：AES-CBC 流式解密

密文按任意大小的片段依次送入，明文在能够确定不是最后一个分组时立即输出。
底层只依赖密钥的"整块加密 / 整块解密"能力，而整块解密总会校验并去除填充，
因此每次中途解密都在数据后追加一个人工构造的填充分组：

    pad_block = encrypt(iv=data 的最后一个分组, 1 字节明文)

解密 data + pad_block 时去掉的只有这 1 字节和它的填充，data 本身原样返回。
"""
import threading
from typing import Iterable, Iterator, Optional

try:
    from .byte_queue import ByteQueue, BytesLike
    from .cbc_key import ALGORITHM, AES_BLOCK_SIZE
    from .errors import ConfigurationError, StreamStateError
except ImportError:
    from hls_stream_decrypt.core.byte_queue import ByteQueue, BytesLike
    from hls_stream_decrypt.core.cbc_key import ALGORITHM, AES_BLOCK_SIZE
    from hls_stream_decrypt.core.errors import ConfigurationError, StreamStateError

# 构造填充分组所用的明文长度，必须满足 0 < n < AES_BLOCK_SIZE
PADDING_PLAINTEXT_SIZE = 1
PADDING_PLAINTEXT = bytes(PADDING_PLAINTEXT_SIZE)


def _check(condition: bool, message: str) -> None:
    # 算法不变量，使用 -O 运行时也必须生效
    if not condition:
        raise AssertionError(message)


class StreamDecryptor:
    """单个密文流的 CBC 解密状态机。

    - submit(chunk) 每收到一个密文片段调用一次，返回可输出的明文或 None
    - finish() 在全部密文送入后调用一次，解密剩余数据（含真实填充）
    - 同一实例的调用通过锁串行化；实例不可复用
    """

    def __init__(self, key, iv: BytesLike):
        if getattr(key, 'algorithm', None) != ALGORITHM:
            raise ConfigurationError(f"密钥算法必须为 {ALGORITHM}")
        missing = {'encrypt', 'decrypt'} - set(getattr(key, 'usages', ()))
        if missing:
            raise ConfigurationError(f"密钥缺少用途: {', '.join(sorted(missing))}")
        if iv is None:
            raise ConfigurationError("缺少 IV")
        if len(iv) != AES_BLOCK_SIZE:
            raise ConfigurationError(f"无效的 IV 长度: {len(iv)} (期望 {AES_BLOCK_SIZE} 字节)")

        self._key = key
        self._iv = bytes(iv)
        self._queue = ByteQueue()
        self._lock = threading.Lock()
        self._closed = False
        self._failed = False

    @property
    def queued_size(self) -> int:
        return self._queue.size

    @property
    def closed(self) -> bool:
        return self._closed

    def _ensure_open(self) -> None:
        if self._failed:
            raise StreamStateError("解密流已因错误终止")
        if self._closed:
            raise StreamStateError("解密流已结束")

    def _fail(self) -> None:
        self._failed = True
        self._closed = True
        self._queue.clear()

    def submit(self, chunk: BytesLike) -> Optional[bytes]:
        with self._lock:
            self._ensure_open()
            try:
                return self._step(chunk)
            except BaseException:
                # 队列和 IV 已不一致，后续输出都不可信
                self._fail()
                raise

    def _step(self, chunk: BytesLike) -> Optional[bytes]:
        self._queue.push(chunk)

        total = self._queue.size
        # 至少一个分组可解密，再留一个分组保证还没到最后一个分组
        if total < 2 * AES_BLOCK_SIZE:
            return None

        remainder = AES_BLOCK_SIZE + (total - AES_BLOCK_SIZE) % AES_BLOCK_SIZE
        usable = total - remainder
        _check(usable > 0 and usable % AES_BLOCK_SIZE == 0, f"可用长度未对齐: {usable}")

        data = self._queue.extract(usable)
        _check(len(data) == usable and self._queue.size == remainder, "队列取出长度不一致")

        next_iv = data[-AES_BLOCK_SIZE:]
        pad_block = self._key.encrypt(next_iv, PADDING_PLAINTEXT)
        _check(len(pad_block) == AES_BLOCK_SIZE, f"填充分组长度异常: {len(pad_block)}")
        plain = self._key.decrypt(self._iv, data + pad_block)
        _check(len(plain) == usable + PADDING_PLAINTEXT_SIZE, f"解密输出长度异常: {len(plain)}")

        self._iv = next_iv
        return plain[:usable]

    def finish(self) -> Optional[bytes]:
        with self._lock:
            self._ensure_open()
            self._closed = True
            if not self._queue:
                return None

            data = self._queue.drain_all()
            try:
                return self._key.decrypt(self._iv, data)
            except BaseException:
                self._fail()
                raise

    def close(self) -> None:
        """放弃该流，释放缓存的片段"""
        with self._lock:
            self._closed = True
            self._queue.clear()


def decrypt_stream(key, iv: BytesLike, chunks: Iterable[BytesLike]) -> Iterator[bytes]:
    """将密文片段序列转换为明文片段序列"""
    decryptor = StreamDecryptor(key, iv)
    try:
        for chunk in chunks:
            plain = decryptor.submit(chunk)
            if plain:
                yield plain
        tail = decryptor.finish()
        if tail:
            yield tail
    finally:
        if not decryptor.closed:
            decryptor.close()
        # 上游若是生成器（如下载流），一并关闭以释放连接
        if hasattr(chunks, 'close'):
            chunks.close()
