"""
异常定义
"""


class ConfigurationError(ValueError):
    """密钥或 IV 配置错误，在任何数据流入之前抛出"""


class DecryptionError(ValueError):
    """解密失败：密文损坏、密钥错误或填充无效。流随之终止"""


class StreamStateError(RuntimeError):
    """解密流已结束、已失败或已关闭后仍被调用"""
