import unittest

from hls_stream_decrypt.core.playlist import (
    is_master_playlist,
    parse_attributes,
    parse_master_playlist,
    parse_media_playlist,
    segment_iv,
)

BASE = "https://cdn.example.com/vod/index.m3u8"

MASTER = """#EXTM3U
#EXT-X-STREAM-INF:BANDWIDTH=800000,RESOLUTION=640x360
low/index.m3u8
#EXT-X-STREAM-INF:BANDWIDTH=2800000,RESOLUTION=1280x720,CODECS="avc1.4d401f,mp4a.40.2"
mid/index.m3u8
#EXT-X-STREAM-INF:BANDWIDTH=5000000,RESOLUTION=1280x720
https://other.example.com/hi/index.m3u8
"""

MEDIA = """#EXTM3U
#EXT-X-VERSION:3
#EXT-X-TARGETDURATION:10
#EXT-X-MEDIA-SEQUENCE:7
#EXT-X-KEY:METHOD=AES-128,URI="keys/k1.key"
#EXTINF:9.5,
seg-7.ts
#EXTINF:10.0,title
seg-8.ts
#EXT-X-KEY:METHOD=AES-128,URI="https://keys.example.com/k2",IV=0x000102030405060708090A0B0C0D0E0F
#EXTINF:4.5,
seg-9.ts
#EXT-X-KEY:METHOD=NONE
#EXTINF:2,
seg-10.ts
#EXT-X-ENDLIST
"""


class TestPlaylist(unittest.TestCase):
    def test_attributes_with_quoted_commas(self):
        attrs = parse_attributes('BANDWIDTH=1,CODECS="a,b",RESOLUTION=1x2')
        self.assertEqual(attrs, {"BANDWIDTH": "1", "CODECS": "a,b", "RESOLUTION": "1x2"})

    def test_master_sorted_best_first(self):
        self.assertTrue(is_master_playlist(MASTER))
        streams = parse_master_playlist(MASTER, BASE)
        self.assertEqual(streams[0]["url"], "https://other.example.com/hi/index.m3u8")
        self.assertEqual(streams[1]["url"], "https://cdn.example.com/vod/mid/index.m3u8")
        self.assertEqual(streams[2]["height"], 360)

    def test_master_without_streams(self):
        with self.assertRaises(ValueError):
            parse_master_playlist("#EXTM3U\n#EXT-X-STREAM-INF:BANDWIDTH=1\n", BASE)

    def test_media_segments_and_keys(self):
        self.assertFalse(is_master_playlist(MEDIA))
        info = parse_media_playlist(MEDIA, BASE)
        segments = info["segments"]
        self.assertEqual([s["sequence"] for s in segments], [7, 8, 9, 10])
        self.assertEqual(segments[0]["url"], "https://cdn.example.com/vod/seg-7.ts")
        self.assertEqual(segments[0]["key"]["uri"], "https://cdn.example.com/vod/keys/k1.key")
        self.assertIsNone(segments[0]["key"]["iv"])
        self.assertEqual(segments[2]["key"]["iv"], bytes(range(16)))
        self.assertIsNone(segments[3]["key"])
        self.assertAlmostEqual(info["duration"], 26.0)
        self.assertTrue(info["encrypted"])

    def test_segment_iv(self):
        info = parse_media_playlist(MEDIA, BASE)
        first, _, third, _ = info["segments"]
        self.assertEqual(segment_iv(first["key"], first["sequence"]), bytes(15) + b"\x07")
        self.assertEqual(segment_iv(third["key"], third["sequence"]), bytes(range(16)))

    def test_unsupported_method(self):
        text = '#EXTM3U\n#EXT-X-KEY:METHOD=SAMPLE-AES,URI="k"\n#EXTINF:1,\na.ts\n'
        with self.assertRaises(ValueError):
            parse_media_playlist(text, BASE)

    def test_missing_key_uri(self):
        text = "#EXTM3U\n#EXT-X-KEY:METHOD=AES-128\n#EXTINF:1,\na.ts\n"
        with self.assertRaises(ValueError):
            parse_media_playlist(text, BASE)

    def test_bad_iv_length(self):
        text = '#EXTM3U\n#EXT-X-KEY:METHOD=AES-128,URI="k",IV=0x0102\n#EXTINF:1,\na.ts\n'
        with self.assertRaises(ValueError):
            parse_media_playlist(text, BASE)

    def test_empty_playlists(self):
        with self.assertRaises(ValueError):
            parse_media_playlist("   ", BASE)
        with self.assertRaises(ValueError):
            parse_media_playlist("#EXTM3U\n#EXT-X-ENDLIST\n", BASE)


if __name__ == "__main__":
    unittest.main()
