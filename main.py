#!/usr/bin/env python3
"""
AES-CBC 流式解密 - 主启动脚本
直接运行此文件启动命令行
"""
import sys
import os

# 确保项目根目录在 Python 路径中
project_root = os.path.dirname(os.path.abspath(__file__))
if project_root not in sys.path:
    sys.path.insert(0, project_root)

from hls_stream_decrypt.cli import main

if __name__ == '__main__':
    main()
