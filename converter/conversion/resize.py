"""Cover-fit resize: scale and center-crop so the image fills the requested box."""
import logging
from typing import Optional

from PIL import Image

logger = logging.getLogger("converter.resize")


def _resample_ready(img: Image.Image) -> Image.Image:
    # Palette and bilevel images only resample with NEAREST
    if img.mode in ("P", "1"):
        return img.convert("RGBA" if "transparency" in img.info else "RGB")
    return img


def resize_cover(
    img: Image.Image,
    target_width: Optional[int] = None,
    target_height: Optional[int] = None,
) -> Image.Image:
    """
    Produce an image covering (target_width, target_height).
    - both set: scale to cover the box, then center-crop to exactly that size.
    - one set: scale proportionally so that dimension matches.
    - none set: the image is returned unchanged.
    Enlarging past the source resolution is allowed.
    """
    if target_width is None and target_height is None:
        return img
    w, h = img.size
    img = _resample_ready(img)

    if target_width is not None and target_height is not None:
        tw, th = target_width, target_height
        if (w, h) == (tw, th):
            return img
        scale = max(tw / w, th / h)
        new_w = max(tw, int(round(w * scale)))
        new_h = max(th, int(round(h * scale)))
        resized = img.resize((new_w, new_h), Image.Resampling.LANCZOS)
        left = (new_w - tw) // 2
        top = (new_h - th) // 2
        return resized.crop((left, top, left + tw, top + th))

    if target_width is not None:
        scale = target_width / w
    else:
        scale = target_height / h
    new_w = max(1, int(round(w * scale)))
    new_h = max(1, int(round(h * scale)))
    if (new_w, new_h) == (w, h):
        return img
    logger.debug("Scaling %sx%s to %sx%s", w, h, new_w, new_h)
    return img.resize((new_w, new_h), Image.Resampling.LANCZOS)
