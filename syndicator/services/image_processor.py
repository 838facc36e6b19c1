# syndicator/services/image_processor.py

"""Обработка изображений: размер, водяной знак, обрезка чужого брендинга."""

import asyncio
import io

from PIL import Image, ImageDraw, ImageFont

from syndicator.models.content import ImageOptions

# Доля высоты снизу, где обычно стоит водяной знак канала-источника
BRANDING_BAND_RATIO = 0.08


class ImageProcessingError(Exception):
    """Не удалось обработать изображение."""


class ImageProcessor:
    async def process(self, data: bytes, options: ImageOptions) -> bytes:
        """Обрабатывает изображение в отдельном потоке.

        Raises:
            ImageProcessingError: Если Pillow не смог прочитать или сохранить файл
        """
        try:
            return await asyncio.to_thread(self._process_sync, data, options)
        except ImageProcessingError:
            raise
        except Exception as e:
            raise ImageProcessingError(str(e)) from e

    def _process_sync(self, data: bytes, options: ImageOptions) -> bytes:
        with Image.open(io.BytesIO(data)) as source:
            source_format = (source.format or "JPEG").upper()
            image = source.convert("RGB") if source_format == "JPEG" else source.copy()

        if options.remove_original_branding:
            image = _crop_bottom_band(image)

        image.thumbnail((options.max_width, options.max_height))

        if options.add_watermark and options.watermark_text:
            image = _draw_watermark(image, options.watermark_text)

        output = io.BytesIO()
        if source_format == "PNG":
            image.save(output, format="PNG", optimize=True)
        elif source_format == "WEBP":
            image.save(output, format="WEBP", quality=options.quality)
        else:
            if image.mode != "RGB":
                image = image.convert("RGB")
            image.save(output, format="JPEG", quality=options.quality, progressive=True)
        return output.getvalue()


def _crop_bottom_band(image: Image.Image) -> Image.Image:
    band = int(image.height * BRANDING_BAND_RATIO)
    if band < 1 or image.height - band < 1:
        return image
    return image.crop((0, 0, image.width, image.height - band))


def _draw_watermark(image: Image.Image, text: str) -> Image.Image:
    base = image.convert("RGBA")
    overlay = Image.new("RGBA", base.size, (0, 0, 0, 0))
    draw = ImageDraw.Draw(overlay)

    font_size = max(int(base.width * 0.02), 12)
    try:
        font = ImageFont.load_default(size=font_size)
    except TypeError:
        font = ImageFont.load_default()

    padding = 20
    left, top, right, bottom = draw.textbbox((0, 0), text, font=font)
    x = max(base.width - (right - left) - padding, 0)
    y = max(base.height - (bottom - top) - padding, 0)

    # Тень для читаемости на светлом фоне
    draw.text((x + 1, y + 1), text, font=font, fill=(0, 0, 0, 160))
    draw.text((x, y), text, font=font, fill=(255, 255, 255, 204))

    combined = Image.alpha_composite(base, overlay)
    return combined.convert(image.mode) if image.mode != "RGBA" else combined
