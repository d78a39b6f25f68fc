import pytest

from batch_encoder.config.settings import EncoderSettings
from batch_encoder.domain.media import MediaFile


@pytest.fixture
def make_settings(tmp_path):
    """EncoderSettings rooted at tmp_path, with the bitrate fast path disabled."""

    def _make(**overrides):
        values = dict(root=tmp_path, min_bitrate_kbps=0)
        values.update(overrides)
        return EncoderSettings(**values)

    return _make


@pytest.fixture
def make_media(tmp_path):
    def _make(name="movie.mkv", size=1_000_000, duration=1000, vcodec="h264", width=1920, directory=None):
        directory = directory or tmp_path
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / name
        path.write_bytes(b"original")
        return MediaFile(path=path, size=size, duration=duration, vcodec=vcodec, width=width, height=1080)

    return _make
