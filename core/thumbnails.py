import logging
from PIL import Image, ImageOps
from config import THUMBNAIL_FORMAT, THUMBNAIL_PREFIX, THUMBNAIL_QUALITY, THUMBNAIL_SIZE
from core.errors import ThumbnailError
from core.imaging import open_image
from pathlib import Path

logger = logging.getLogger(__name__)


class ThumbnailGenerator:
    """Generate fixed-size, center-cropped thumbnails honoring EXIF orientation"""

    def __init__(
        self,
        size: int = THUMBNAIL_SIZE,
        quality: int = THUMBNAIL_QUALITY,
        image_format: str = THUMBNAIL_FORMAT,
        output_dir: Path | None = None,
    ):
        self.size = size
        self.quality = quality
        self.image_format = image_format.lower()
        self.output_dir = output_dir

    def thumbnail_name(self, image_path: Path) -> str:
        """Deterministic thumbnail file name for a source image"""
        return f"{THUMBNAIL_PREFIX}{image_path.stem}.{self.image_format}"

    def generate(self, image_path: Path, output_dir: Path | None = None) -> str:
        """
        Write a thumbnail for image_path and return its file name

        Args:
            image_path: Source image
            output_dir: Target directory; defaults to the generator's directory,
                then to the source image's own directory

        Returns:
            str: thumbnail file name, relative to the output directory
        """
        target_dir = output_dir or self.output_dir or image_path.parent
        thumb_name = self.thumbnail_name(image_path)
        thumb_path = target_dir / thumb_name

        with open_image(image_path, error_class=ThumbnailError) as image:
            try:
                oriented = ImageOps.exif_transpose(image)
                thumb = ImageOps.fit(
                    oriented, (self.size, self.size), method=Image.Resampling.LANCZOS, centering=(0.5, 0.5)
                )
            except (OSError, ValueError, SyntaxError) as e:
                raise ThumbnailError(image_path.name, f"cannot decode image: {e}") from e

        if thumb.mode not in ('RGB', 'RGBA'):
            thumb = thumb.convert('RGBA' if 'A' in thumb.getbands() else 'RGB')
        if self.image_format in ('jpg', 'jpeg') and thumb.mode == 'RGBA':
            background = Image.new('RGB', thumb.size, (255, 255, 255))
            background.paste(thumb, mask=thumb.split()[-1])
            thumb = background

        try:
            target_dir.mkdir(parents=True, exist_ok=True)
            save_format = 'JPEG' if self.image_format in ('jpg', 'jpeg') else self.image_format.upper()
            thumb.save(thumb_path, format=save_format, quality=self.quality)
        except (OSError, ValueError, KeyError) as e:
            raise ThumbnailError(image_path.name, f"cannot write thumbnail {thumb_path}: {e}") from e

        logger.debug(f"Thumbnail written: {thumb_path}")
        return thumb_name
