import pytest
from unittest.mock import MagicMock, patch
from PIL import Image
import io
import base64
import requests
from src.curation.thumbnail import ThumbnailGenerator


def _image_bytes(mode="RGB", size=(1000, 1000), color="red", format="JPEG"):
    img = Image.new(mode, size, color=color)
    buffer = io.BytesIO()
    img.save(buffer, format=format)
    return buffer.getvalue()


@pytest.fixture
def sample_image():
    """Large sample image bytes."""
    return _image_bytes()


@pytest.fixture
def png_image():
    """PNG with transparency."""
    return _image_bytes(mode="RGBA", size=(800, 800), color=(0, 255, 0, 128), format="PNG")


@pytest.fixture
def mock_get(sample_image):
    with patch("src.curation.thumbnail.requests.get") as mock:
        response = MagicMock()
        response.content = sample_image
        mock.return_value = response
        yield mock


def test_resize_constraint(sample_image):
    generator = ThumbnailGenerator(max_size=(512, 512))
    thumbnail_bytes = generator.generate(sample_image)

    with Image.open(io.BytesIO(thumbnail_bytes)) as img:
        assert img.width <= 512
        assert img.height <= 512
        assert img.format == "JPEG"


def test_aspect_ratio_preserved():
    generator = ThumbnailGenerator(max_size=(512, 512))
    thumbnail_bytes = generator.generate(_image_bytes(size=(1024, 256)))

    with Image.open(io.BytesIO(thumbnail_bytes)) as img:
        assert img.size == (512, 128)


def test_png_automation_conversion(png_image):
    """PNGs are converted to JPEG RGB automatically."""
    generator = ThumbnailGenerator()
    thumbnail_bytes = generator.generate(png_image)

    with Image.open(io.BytesIO(thumbnail_bytes)) as img:
        assert img.format == "JPEG"
        assert img.mode == "RGB"


def test_invalid_bytes():
    with pytest.raises(OSError):
        ThumbnailGenerator().generate(b"definitely not an image")


def test_fetch(mock_get, sample_image):
    generator = ThumbnailGenerator(timeout=5)
    assert generator.fetch("https://img.example/1.png") == sample_image
    mock_get.assert_called_once_with("https://img.example/1.png", timeout=5)


def test_fetch_http_error(mock_get):
    mock_get.return_value.raise_for_status.side_effect = requests.HTTPError("404 Not Found")
    with pytest.raises(OSError):
        ThumbnailGenerator().fetch("https://img.example/missing.png")


def test_fetch_connection_error(mock_get):
    mock_get.side_effect = requests.ConnectionError("refused")
    with pytest.raises(OSError):
        ThumbnailGenerator().fetch("https://img.example/1.png")


def test_base64_output(mock_get):
    b64_str = ThumbnailGenerator().to_base64("https://img.example/1.png")

    assert isinstance(b64_str, str)
    # Validate it decodes back
    decoded = base64.b64decode(b64_str)
    assert decoded.startswith(b'\xff\xd8')


def test_data_url(mock_get):
    data_url = ThumbnailGenerator().to_data_url("https://img.example/1.png")
    assert data_url.startswith("data:image/jpeg;base64,")
