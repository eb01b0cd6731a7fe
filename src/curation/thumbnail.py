from PIL import Image
import requests
import base64
import io


class ThumbnailGenerator:
    """Downloads remote images and optimizes them for LLM consumption (resize, compress, encode)."""

    def __init__(
        self,
        max_size: tuple[int, int] = (512, 512),
        quality: int = 60,
        format: str = "JPEG",
        timeout: float = 30.0,
    ):
        self.max_size = max_size
        self.quality = quality
        self.format = format
        self.timeout = timeout

    def fetch(self, image_url: str) -> bytes:
        """Download raw image bytes."""
        try:
            response = requests.get(image_url, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise OSError(f"Failed to download image {image_url}: {e}")
        return response.content

    def generate(self, image_bytes: bytes) -> bytes:
        """
        Creates an optimized thumbnail.
        - Resizes maintaining aspect ratio (LANCZOS)
        - Compresses to specified quality
        - Returns bytes
        """
        img_copy = None
        try:
            with Image.open(io.BytesIO(image_bytes)) as img:
                # JPEG has no alpha or palette
                if img.mode in ("RGBA", "P", "LA"):
                    img = img.convert("RGB")
                img_copy = img.copy()

            img_copy.thumbnail(self.max_size, Image.Resampling.LANCZOS)

            buffer = io.BytesIO()
            img_copy.save(
                buffer,
                format=self.format,
                quality=self.quality,
                optimize=True
            )
            return buffer.getvalue()
        except OSError as e:
            raise OSError(f"Failed to process image: {e}")
        finally:
            if img_copy is not None:
                img_copy.close()

    def to_base64(self, image_url: str) -> str:
        """Returns base64-encoded thumbnail of a remote image."""
        thumbnail_bytes = self.generate(self.fetch(image_url))
        return base64.b64encode(thumbnail_bytes).decode("utf-8")

    def to_data_url(self, image_url: str) -> str:
        """Returns a data URL suitable for an `image_url` message block."""
        return f"data:image/{self.format.lower()};base64,{self.to_base64(image_url)}"
