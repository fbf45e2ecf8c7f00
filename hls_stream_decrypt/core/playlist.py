"""
播放列表解析：主播放列表 / 媒体播放列表 / EXT-X-KEY
"""
import re
from typing import Dict, List, Optional
from urllib.parse import urljoin

try:
    from .cbc_key import AES_BLOCK_SIZE
    from .utils import parse_hex
except ImportError:
    from hls_stream_decrypt.core.cbc_key import AES_BLOCK_SIZE
    from hls_stream_decrypt.core.utils import parse_hex

# 属性列表：KEY=VALUE，VALUE 可能是带逗号的引号字符串
ATTRIBUTE_PATTERN = re.compile(r'([A-Z0-9-]+)=("[^"]*"|[^,]*)')


def parse_attributes(text: str) -> Dict[str, str]:
    attrs: Dict[str, str] = {}
    for name, value in ATTRIBUTE_PATTERN.findall(text):
        if value.startswith('"') and value.endswith('"'):
            value = value[1:-1]
        attrs[name] = value.strip()
    return attrs


def _resolve(base_url: str, path: str) -> str:
    path = path.strip()
    return path if path.startswith('http') else urljoin(base_url, path)


def is_master_playlist(content: str) -> bool:
    return '#EXT-X-STREAM-INF' in content


def parse_master_playlist(content: str, base_url: str) -> List[Dict]:
    """解析主播放列表，按分辨率、带宽从高到低排序"""
    streams: List[Dict] = []
    lines = [line.strip() for line in content.splitlines()]
    for i, line in enumerate(lines):
        if not line.startswith('#EXT-X-STREAM-INF:'):
            continue
        attrs = parse_attributes(line.split(':', 1)[1])
        uri = next((l for l in lines[i + 1:] if l and not l.startswith('#')), None)
        if not uri:
            continue

        width = height = 0
        resolution = attrs.get('RESOLUTION', '')
        if 'x' in resolution:
            w, h = resolution.lower().split('x', 1)
            width, height = int(w or 0), int(h or 0)
        streams.append({
            'url': _resolve(base_url, uri),
            'width': width,
            'height': height,
            'bandwidth': int(attrs.get('BANDWIDTH') or 0),
        })

    if not streams:
        raise ValueError('未找到有效的流信息')

    streams.sort(key=lambda s: (s['width'] * s['height'], s['bandwidth']), reverse=True)
    return streams


def parse_key(line: str, base_url: str) -> Optional[Dict]:
    """解析 #EXT-X-KEY，METHOD=NONE 返回 None"""
    attrs = parse_attributes(line.split(':', 1)[1])
    method = attrs.get('METHOD', '').upper()
    if method == 'NONE':
        return None
    if method != 'AES-128':
        raise ValueError(f"不支持的加密方式: {method or '(空)'}")
    if not attrs.get('URI'):
        raise ValueError('AES-128 加密缺少密钥 URI')

    iv = None
    if attrs.get('IV'):
        iv = parse_hex(attrs['IV'])
        if len(iv) != AES_BLOCK_SIZE:
            raise ValueError(f"无效的 IV 长度: {len(iv)} (期望 {AES_BLOCK_SIZE} 字节)")
    return {'method': method, 'uri': _resolve(base_url, attrs['URI']), 'iv': iv}


def segment_iv(key_info: Dict, sequence: int) -> bytes:
    """片段 IV：显式 IV 优先，否则为媒体序号的 16 字节大端表示"""
    if key_info.get('iv'):
        return key_info['iv']
    return sequence.to_bytes(AES_BLOCK_SIZE, 'big')


def parse_media_playlist(content: str, base_url: str) -> Dict:
    """解析媒体播放列表，返回片段列表及每个片段对应的密钥信息"""
    if not content.strip():
        raise ValueError("M3U8 文件为空")

    media_sequence = 0
    key_info: Optional[Dict] = None
    duration: Optional[float] = None
    segments: List[Dict] = []
    total_duration = 0.0

    for raw in content.splitlines():
        line = raw.strip()
        if not line:
            continue
        if line.startswith('#EXT-X-MEDIA-SEQUENCE:'):
            media_sequence = int(line.split(':', 1)[1])
        elif line.startswith('#EXT-X-KEY:'):
            key_info = parse_key(line, base_url)
        elif line.startswith('#EXTINF:'):
            value = line.split(':', 1)[1].split(',', 1)[0]
            try:
                duration = float(value)
            except ValueError:
                duration = 0.0
        elif not line.startswith('#'):
            segments.append({
                'url': _resolve(base_url, line),
                'duration': duration or 0.0,
                'sequence': media_sequence + len(segments),
                'key': key_info,
            })
            total_duration += duration or 0.0
            duration = None

    if not segments:
        raise ValueError("未找到有效的媒体片段")

    return {
        'url': base_url,
        'segments': segments,
        'media_sequence': media_sequence,
        'duration': total_duration,
        'encrypted': any(s['key'] for s in segments),
    }
