# -*- coding: utf-8 -*-
"""
AES-CBC 流式解密 - python -m 入口
"""
from hls_stream_decrypt.cli import main

if __name__ == '__main__':
    main()
