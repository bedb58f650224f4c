import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import PIL
from PIL import Image, ImageDraw, ImageFont
from sqlalchemy.orm import Session

from country_api import crud
from country_api.errors import RenderError

logger = logging.getLogger("country_api.refresh")

WIDTH, HEIGHT = 600, 400
TOP_N = 5
IMAGE_NAME = "summary.png"

BG = (240, 240, 240)
FG = (51, 51, 51)
ACCENT = (60, 99, 243)
MUTED = (110, 110, 110)


def format_gdp_billions(value: Optional[float]) -> str:
    """Render an estimated GDP as billions of USD, e.g. ``$1234.57B``."""
    if value is None:
        return "N/A"
    return f"${value / 1e9:.2f}B"


def _resolve_font_path(font_filename: str) -> Optional[Path]:
    base = Path(PIL.__file__).parent
    candidates = [
        base / font_filename,
        base / "fonts" / font_filename,
        base.parent / font_filename,
        Path("/usr/share/fonts/truetype/dejavu") / font_filename,
    ]
    for p in candidates:
        if p.exists():
            return p
    return None


def _load_font(name: str, size: int):
    p = _resolve_font_path(name)
    if p is not None:
        try:
            return ImageFont.truetype(str(p), size)
        except OSError:
            logger.debug("Could not load font %s, using default", p)
    return ImageFont.load_default()


def draw_summary(total: int, top_countries, rendered_at: datetime) -> Image.Image:
    img = Image.new("RGB", (WIDTH, HEIGHT), color=BG)
    draw = ImageDraw.Draw(img)

    font_title = _load_font("DejaVuSans-Bold.ttf", 22)
    font_body = _load_font("DejaVuSans.ttf", 17)
    font_small = _load_font("DejaVuSans.ttf", 13)

    margin = 20
    draw.text((margin, 24), "Country Currency & Exchange - Summary", fill=ACCENT, font=font_title)
    draw.text((margin, 70), f"Total Countries: {total}", fill=FG, font=font_body)
    draw.text((margin, 110), f"Top {TOP_N} by Estimated GDP:", fill=FG, font=font_body)

    y = 142
    if not top_countries:
        draw.text((margin + 10, y), "No GDP data available.", fill=MUTED, font=font_body)
    for rank, country in enumerate(top_countries[:TOP_N], start=1):
        line = f"{rank}. {country.name}: {format_gdp_billions(country.estimated_gdp)}"
        draw.text((margin + 10, y), line, fill=FG, font=font_body)
        y += 30

    stamp = rendered_at.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")
    draw.text((margin, HEIGHT - 36), f"Last Refresh: {stamp}", fill=MUTED, font=font_small)
    return img


def render_summary_image(db: Session, cache_dir: Path) -> Path:
    """Render the store summary to a staging file next to ``<cache_dir>/summary.png``.

    Nothing visible changes until ``publish_summary_image`` moves the staged
    file into place, so a caller can hold the image back until its
    transaction commits.
    """
    total = crud.count_countries(db)
    top = crud.get_top_countries_by_gdp(db, limit=TOP_N)
    target = Path(cache_dir) / IMAGE_NAME
    staged = target.with_name(target.name + ".tmp")
    try:
        img = draw_summary(total, top, datetime.now(timezone.utc))
        os.makedirs(target.parent, exist_ok=True)
        img.save(str(staged), format="PNG")
    except Exception as exc:
        logger.error("Summary image generation failed: %s", exc)
        discard_summary_image(staged)
        raise RenderError(f"Could not write summary image to {target}") from exc
    logger.debug("Summary image staged at %s (total=%d, top=%d)", staged, total, len(top))
    return staged


def publish_summary_image(staged: Path) -> Path:
    target = staged.with_name(IMAGE_NAME)
    try:
        os.replace(staged, target)
    except OSError as exc:
        logger.error("Could not move %s into place: %s", staged, exc)
        discard_summary_image(staged)
        raise RenderError(f"Could not write summary image to {target}") from exc
    logger.info("Summary image written to %s", target)
    return target


def discard_summary_image(staged: Path) -> None:
    if staged.exists():
        staged.unlink()


def generate_summary_image(db: Session, cache_dir: Path) -> Path:
    """Render and publish the summary in one step, replacing any previous image."""
    return publish_summary_image(render_summary_image(db, cache_dir))
