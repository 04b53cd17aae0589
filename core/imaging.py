from PIL import Image, UnidentifiedImageError
from core.errors import ImageDecodeError, PhotoProcessingError
from pathlib import Path
from pillow_heif import register_heif_opener

register_heif_opener()


def open_image(image_path: Path, error_class: type[PhotoProcessingError] = ImageDecodeError) -> Image.Image:
    """Open an image with Pillow, raising a record-level error when it cannot be decoded"""
    try:
        return Image.open(image_path)
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise error_class(image_path.name, f"cannot decode image: {e}") from e
