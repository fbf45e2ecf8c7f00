"""
密钥封装：AES-CBC + PKCS#7 的整块加密 / 解密能力
"""
from typing import FrozenSet, Iterable

from Crypto.Cipher import AES
from Crypto.Util.Padding import pad, unpad

try:
    from .errors import ConfigurationError, DecryptionError
except ImportError:
    from hls_stream_decrypt.core.errors import ConfigurationError, DecryptionError

ALGORITHM = 'AES-CBC'
AES_BLOCK_SIZE = AES.block_size
KEY_SIZES = (16, 32)
USAGES = frozenset(('encrypt', 'decrypt'))


class CbcKey:
    """不可变的 AES-CBC 密钥。

    只提供"整块加密"和"整块解密"两个操作，不暴露分组原语：
    - encrypt 自动追加 PKCS#7 填充
    - decrypt 校验并去除最后一个分组中的 PKCS#7 填充
    同一个密钥可以被多个解密流并发共享。
    """

    __slots__ = ('_raw', '_usages')

    def __init__(self, raw: bytes, usages: Iterable[str] = USAGES):
        raw = bytes(raw)
        if len(raw) not in KEY_SIZES:
            raise ConfigurationError(f"无效的密钥长度: {len(raw)} (期望 16 或 32 字节)")
        usages = frozenset(usages)
        unknown = usages - USAGES
        if unknown:
            raise ConfigurationError(f"不支持的密钥用途: {', '.join(sorted(unknown))}")
        self._raw = raw
        self._usages = usages

    @property
    def algorithm(self) -> str:
        return ALGORITHM

    @property
    def usages(self) -> FrozenSet[str]:
        return self._usages

    @property
    def length(self) -> int:
        """密钥位数"""
        return len(self._raw) * 8

    def allows(self, usage: str) -> bool:
        return usage in self._usages

    def __repr__(self) -> str:
        return f"CbcKey(length={self.length}, usages={sorted(self._usages)})"

    def _cipher(self, usage: str, iv: bytes):
        if usage not in self._usages:
            raise ConfigurationError(f"密钥不允许 {usage} 操作")
        if len(iv) != AES_BLOCK_SIZE:
            raise ConfigurationError(f"无效的 IV 长度: {len(iv)} (期望 {AES_BLOCK_SIZE} 字节)")
        return AES.new(self._raw, AES.MODE_CBC, iv=bytes(iv))

    def encrypt(self, iv: bytes, data: bytes) -> bytes:
        cipher = self._cipher('encrypt', iv)
        return cipher.encrypt(pad(bytes(data), AES_BLOCK_SIZE))

    def decrypt(self, iv: bytes, data: bytes) -> bytes:
        cipher = self._cipher('decrypt', iv)
        if not data or len(data) % AES_BLOCK_SIZE:
            raise DecryptionError(f"密文长度无效: {len(data)} 字节 (必须是 {AES_BLOCK_SIZE} 的正整数倍)")
        try:
            return unpad(cipher.decrypt(bytes(data)), AES_BLOCK_SIZE)
        except ValueError as e:
            raise DecryptionError(f"解密失败: {e}") from e


def import_key(raw: bytes, usages: Iterable[str] = USAGES) -> CbcKey:
    """从原始字节导入 AES-CBC 密钥"""
    return CbcKey(raw, usages)
