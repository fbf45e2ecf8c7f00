"""
工具函数
"""
import os
from typing import Iterator

DEFAULT_CHUNK_SIZE = 64 * 1024


def ensure_dir_exists(path: str) -> None:
    """确保目录存在"""
    if not path:
        return
    os.makedirs(path, exist_ok=True)


def human_size(num: float) -> str:
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if num < 1024:
            return f"{num:.2f}{unit}"
        num /= 1024
    return f"{num:.2f}PB"


def parse_hex(value: str) -> bytes:
    """解析十六进制字符串，允许 0x 前缀"""
    value = value.strip()
    if value.lower().startswith('0x'):
        value = value[2:]
    try:
        return bytes.fromhex(value)
    except ValueError:
        raise ValueError(f"无效的十六进制字符串: {value!r}")


def is_url(value: str) -> bool:
    return value.lower().startswith(('http://', 'https://'))


def iter_file_chunks(path: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
    """分块读取文件，避免一次性载入内存"""
    if chunk_size <= 0:
        raise ValueError(f"无效的分块大小: {chunk_size}")
    with open(path, 'rb') as f:
        while True:
            chunk = f.read(chunk_size)
            if not chunk:
                break
            yield chunk
