"""PCM wire encoding for captured audio frames."""

import base64

import numpy as np

from ..models.audio import EncodedChunk, PCM_MIME_TYPE

PCM_SCALE = 32768
INT16_MIN = -32768
INT16_MAX = 32767


def encode_frame(samples: np.ndarray, clamp: bool = True,
                 mime_type: str = PCM_MIME_TYPE) -> EncodedChunk:
    """Scale float samples to int16 PCM, little-endian, base64 encoded.

    With clamp=False an out-of-range sample wraps around the int16 range.
    """
    scaled = np.rint(np.asarray(samples, dtype=np.float64) * PCM_SCALE)
    if clamp:
        scaled = np.clip(scaled, INT16_MIN, INT16_MAX)
        pcm = scaled.astype('<i2')
    else:
        pcm = scaled.astype(np.int64).astype('<i2')
    return EncodedChunk(
        data=base64.b64encode(pcm.tobytes()).decode('ascii'),
        mime_type=mime_type,
        sample_count=len(pcm),
    )


def decode_chunk(chunk: EncodedChunk) -> np.ndarray:
    """Inverse of encode_frame: base64 int16 PCM back to float samples."""
    pcm = np.frombuffer(base64.b64decode(chunk.data), dtype='<i2')
    return pcm.astype(np.float32) / PCM_SCALE
