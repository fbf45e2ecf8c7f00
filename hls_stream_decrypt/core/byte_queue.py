"""
字节队列：缓存尚未解密的密文片段
"""
from collections import deque
from typing import Deque, Union

BytesLike = Union[bytes, bytearray, memoryview]


class ByteQueue:
    """按顺序保存字节片段，并支持精确取出 N 个字节。

    - 完整取走的片段直接丢弃
    - 只取走一部分的片段，原位替换为剩余部分的视图（不复制）
    """

    def __init__(self) -> None:
        self._fragments: Deque[memoryview] = deque()
        self._size = 0

    @property
    def size(self) -> int:
        return self._size

    def __len__(self) -> int:
        return self._size

    def __bool__(self) -> bool:
        return self._size > 0

    def push(self, fragment: BytesLike) -> None:
        if not fragment:
            return
        # bytearray 可能被调用方继续修改，这里固定一份
        if not isinstance(fragment, bytes):
            fragment = bytes(fragment)
        self._fragments.append(memoryview(fragment))
        self._size += len(fragment)

    def extract(self, amount: int) -> bytes:
        """从队首取出恰好 amount 个字节"""
        if amount < 0:
            raise ValueError(f"无效的读取长度: {amount}")
        if amount > self._size:
            raise ValueError(f"队列数据不足: 需要 {amount} 字节，仅有 {self._size} 字节")

        parts = []
        needed = amount
        while needed > 0:
            head = self._fragments[0]
            if len(head) <= needed:
                parts.append(head)
                needed -= len(head)
                self._fragments.popleft()
            else:
                parts.append(head[:needed])
                self._fragments[0] = head[needed:]
                needed = 0

        self._size -= amount
        return b''.join(parts)

    def drain_all(self) -> bytes:
        data = b''.join(self._fragments)
        self.clear()
        return data

    def clear(self) -> None:
        self._fragments.clear()
        self._size = 0
