"""
Shared pytest fixtures and configuration for all tests
"""
import io
import pytest
import sys
from pathlib import Path

# Add backend to Python path for imports
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))


def make_image_data_url(mode="RGB", size=(8, 6), color=(120, 60, 200), fmt="PNG"):
    """Build a small in-memory image as a data URL"""
    from PIL import Image
    from core.image_data import encode_data_url

    img = Image.new(mode, size, color)
    # Add a second colour so blur and contrast have something to work on
    img.putpixel((0, 0), (250, 250, 250) if mode == "RGB" else (250, 250, 250, 128))
    buffer = io.BytesIO()
    img.save(buffer, format=fmt)
    return encode_data_url(buffer.getvalue(), f"image/{fmt.lower()}")


def load_data_url(data_url):
    """Decode a data URL into a Pillow image"""
    from PIL import Image
    from core.image_data import decode_data_url

    _, image_bytes = decode_data_url(data_url)
    img = Image.open(io.BytesIO(image_bytes))
    img.load()
    return img


@pytest.fixture
def sample_image():
    """Provide an opaque RGB PNG as a data URL"""
    return make_image_data_url()


@pytest.fixture
def transparent_image():
    """Provide an RGBA PNG with partial transparency"""
    return make_image_data_url(mode="RGBA", color=(120, 60, 200, 64))


@pytest.fixture
def rate_limiter():
    """Provide a fresh limiter with the production window and threshold"""
    from core.rate_limiter import RateLimiter
    return RateLimiter(limit=10, window_seconds=60.0)
