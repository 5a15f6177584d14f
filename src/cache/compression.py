"""
Cache Compression Utilities

LZ4 for typical entries, ZSTD for very large ones (full campaign listings).
Every stored value carries a one-byte marker so readers know how to decode it.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Optional, Tuple

import lz4.frame
import zstandard


logger = logging.getLogger(__name__)


MARKER_UNCOMPRESSED = b'\x00'
MARKER_LZ4 = b'\x01'
MARKER_ZSTD = b'\x02'


@dataclass
class CompressionStats:
    original_size: int
    compressed_size: int
    algorithm: str

    @property
    def compression_ratio(self) -> float:
        if self.compressed_size == 0:
            return 0.0
        return self.original_size / self.compressed_size


class CacheCompressor:
    """Compresses cache entries above a size threshold."""

    def __init__(
        self,
        enabled: bool = True,
        threshold: int = 1024,
        zstd_threshold: int = 102400,
    ):
        self.enabled = enabled
        self.threshold = threshold
        self.zstd_threshold = zstd_threshold
        self._zstd_compressor = zstandard.ZstdCompressor(level=3)
        self._zstd_decompressor = zstandard.ZstdDecompressor()

    def compress(self, data: bytes) -> Tuple[bytes, Optional[CompressionStats]]:
        """
        Compress data if it is large enough and compression actually helps.

        Returns:
            Tuple of (marked_data, stats); stats is None when stored uncompressed
        """
        if not self.enabled or len(data) < self.threshold:
            return MARKER_UNCOMPRESSED + data, None

        if len(data) >= self.zstd_threshold:
            compressed = self._zstd_compressor.compress(data)
            marker, algorithm = MARKER_ZSTD, "zstd"
        else:
            compressed = lz4.frame.compress(data)
            marker, algorithm = MARKER_LZ4, "lz4"

        if len(compressed) >= len(data):
            return MARKER_UNCOMPRESSED + data, None

        stats = CompressionStats(
            original_size=len(data),
            compressed_size=len(compressed) + 1,
            algorithm=algorithm,
        )
        return marker + compressed, stats

    def decompress(self, data: bytes) -> bytes:
        """
        Strip the marker and decompress accordingly.

        Raises:
            ValueError: unknown marker or a payload the codec rejects
        """
        if not data:
            return data

        marker = data[0:1]
        payload = data[1:]

        if marker == MARKER_UNCOMPRESSED:
            return payload
        try:
            if marker == MARKER_LZ4:
                return lz4.frame.decompress(payload)
            if marker == MARKER_ZSTD:
                return self._zstd_decompressor.decompress(payload)
        except (RuntimeError, zstandard.ZstdError) as e:
            raise ValueError(f"Corrupt {marker!r} payload: {e}") from e

        raise ValueError(f"Unknown compression marker: {marker!r}")


def serialize_value(value: Any) -> bytes:
    """
    Serialize a Python value to bytes for caching.

    Uses JSON with a default handler for datetimes and other objects.
    """
    def default_handler(obj):
        if hasattr(obj, 'isoformat'):
            return obj.isoformat()
        if hasattr(obj, 'model_dump'):
            return obj.model_dump(by_alias=True)
        if hasattr(obj, '__dict__'):
            return obj.__dict__
        return str(obj)

    json_str = json.dumps(value, default=default_handler, ensure_ascii=False)
    return json_str.encode('utf-8')


def deserialize_value(data: bytes) -> Any:
    """Deserialize bytes back to a Python value."""
    if not data:
        return None
    return json.loads(data.decode('utf-8'))
