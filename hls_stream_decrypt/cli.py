"""
命令行入口：decrypt / verify / download
"""
import os
import sys
from typing import Iterator, Optional

import requests
import typer

try:
    from .core.cbc_key import CbcKey, import_key
    from .core.decryptor import decrypt_stream
    from .core.errors import ConfigurationError, DecryptionError
    from .core.fetcher import SegmentFetcher
    from .core.utils import DEFAULT_CHUNK_SIZE, ensure_dir_exists, human_size, is_url, iter_file_chunks, parse_hex
except ImportError:
    from hls_stream_decrypt.core.cbc_key import CbcKey, import_key
    from hls_stream_decrypt.core.decryptor import decrypt_stream
    from hls_stream_decrypt.core.errors import ConfigurationError, DecryptionError
    from hls_stream_decrypt.core.fetcher import SegmentFetcher
    from hls_stream_decrypt.core.utils import DEFAULT_CHUNK_SIZE, ensure_dir_exists, human_size, is_url, iter_file_chunks, parse_hex

app = typer.Typer(add_completion=False, no_args_is_help=True, help="AES-CBC 流式解密工具")

EXPECTED_ERRORS = (ConfigurationError, DecryptionError, requests.RequestException, ValueError, OSError)


def _flush_logs(fetcher: SegmentFetcher) -> None:
    for msg in fetcher.get_logs():
        typer.echo(msg, err=True)


def _load_key(value: str, fetcher: SegmentFetcher) -> CbcKey:
    """KEY 可以是十六进制字符串、本地密钥文件或密钥 URL"""
    if is_url(value):
        return fetcher.fetch_key(value)
    if os.path.isfile(value):
        with open(value, 'rb') as f:
            return import_key(f.read())
    return import_key(parse_hex(value))


def _ciphertext(source: str, fetcher: SegmentFetcher, chunk_size: int) -> Iterator[bytes]:
    if is_url(source):
        return fetcher.iter_ciphertext(source)
    return iter_file_chunks(source, chunk_size)


def _fail(e: Exception, fetcher: SegmentFetcher) -> None:
    _flush_logs(fetcher)
    typer.echo(f"❌ {e}", err=True)
    raise typer.Exit(code=1)


@app.command()
def decrypt(
    source: str = typer.Argument(..., help="密文文件路径或 URL"),
    key: str = typer.Option(..., "--key", "-k", help="十六进制密钥、密钥文件或密钥 URL"),
    iv: str = typer.Option(..., "--iv", "-i", help="十六进制 IV (16 字节)"),
    output: Optional[str] = typer.Option(None, "--output", "-o", help="输出文件，缺省写到标准输出"),
    chunk_size: int = typer.Option(DEFAULT_CHUNK_SIZE, "--chunk-size", help="读取分块大小"),
) -> None:
    """流式解密单个密文"""
    fetcher = SegmentFetcher(chunk_size=chunk_size)
    try:
        cbc_key = _load_key(key, fetcher)
        fragments = decrypt_stream(cbc_key, parse_hex(iv), _ciphertext(source, fetcher, chunk_size))
        written = 0
        if output:
            ensure_dir_exists(os.path.dirname(os.path.abspath(output)))
            with open(output, 'wb') as f:
                for fragment in fragments:
                    f.write(fragment)
                    written += len(fragment)
        else:
            out = sys.stdout.buffer
            for fragment in fragments:
                out.write(fragment)
                written += len(fragment)
            out.flush()
    except EXPECTED_ERRORS as e:
        _fail(e, fetcher)
    _flush_logs(fetcher)
    typer.echo(f"✅ 解密完成: {human_size(written)}", err=True)


@app.command()
def verify(
    source: str = typer.Argument(..., help="密文文件路径或 URL"),
    key: str = typer.Option(..., "--key", "-k", help="十六进制密钥、密钥文件或密钥 URL"),
    iv: str = typer.Option(..., "--iv", "-i", help="十六进制 IV (16 字节)"),
    chunk_size: int = typer.Option(DEFAULT_CHUNK_SIZE, "--chunk-size", help="读取分块大小"),
) -> None:
    """对照一次性解密与流式解密的结果"""
    fetcher = SegmentFetcher(chunk_size=chunk_size)
    try:
        cbc_key = _load_key(key, fetcher)
        iv_bytes = parse_hex(iv)
        if is_url(source):
            same = fetcher.verify(source, cbc_key, iv_bytes)
        else:
            with open(source, 'rb') as f:
                reference = cbc_key.decrypt(iv_bytes, f.read())
            streamed = b''.join(decrypt_stream(cbc_key, iv_bytes, iter_file_chunks(source, chunk_size)))
            same = reference == streamed
    except EXPECTED_ERRORS as e:
        _fail(e, fetcher)
    _flush_logs(fetcher)
    if not same:
        typer.echo("❌ 流式解密结果与一次性解密不一致", err=True)
        raise typer.Exit(code=1)
    typer.echo("✅ 结果一致")


@app.command()
def download(
    playlist: str = typer.Argument(..., help="M3U8 播放列表 URL"),
    output: str = typer.Option(..., "--output", "-o", help="输出文件"),
    chunk_size: int = typer.Option(DEFAULT_CHUNK_SIZE, "--chunk-size", help="下载分块大小"),
    retries: int = typer.Option(3, "--retries", help="请求失败重试次数"),
) -> None:
    """下载播放列表中的全部片段并解密拼接"""
    fetcher = SegmentFetcher(chunk_size=chunk_size, max_retries=retries)

    def progress(percent: int, msg: str) -> None:
        _flush_logs(fetcher)
        typer.echo(f"[{percent:3d}%] {msg}", err=True)

    try:
        fetcher.download(playlist, output, progress_callback=progress)
    except EXPECTED_ERRORS as e:
        _fail(e, fetcher)
    _flush_logs(fetcher)
    typer.echo('🎉 下载任务完成', err=True)


def main() -> None:
    app()
