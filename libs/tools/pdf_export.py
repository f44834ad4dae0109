from __future__ import annotations

import re
from dataclasses import dataclass
from io import BytesIO
from typing import List, Tuple

from bs4 import BeautifulSoup, NavigableString
from PIL import Image, ImageDraw, ImageFont

from libs.core.errors import ExportError
from libs.core.substitution import BLOCK_TAGS, HIGHLIGHT_TAG

PDF_MEDIA_TYPE = "application/pdf"
PAGE_WIDTH_MM = 210.0
PAGE_HEIGHT_MM = 295.0
MARGIN_MM = 12.0
BODY_FONT_PT = 11
HEADING_FONT_PT = 14
LINE_SPACING = 1.45
HIGHLIGHT_FILL = (255, 236, 139)
TEXT_FILL = (17, 17, 17)
BACKGROUND = (255, 255, 255)
_HEADING_TAGS = {"h1", "h2", "h3", "h4", "h5", "h6"}
_TOKEN_RE = re.compile(r"\S+\s*|\s+")


def mm_to_px(mm: float, dpi: int) -> int:
    return max(1, int(round(mm / 25.4 * dpi)))


def pt_to_px(pt: float, dpi: int) -> int:
    return max(1, int(round(pt / 72.0 * dpi)))


def _load_font(size_px: int) -> ImageFont.ImageFont | ImageFont.FreeTypeFont:
    try:
        return ImageFont.load_default(size=size_px)
    except TypeError:
        return ImageFont.load_default()


@dataclass
class _Glyph:
    x: int
    y: int
    text: str
    marked: bool
    font: ImageFont.ImageFont | ImageFont.FreeTypeFont
    width: int
    height: int


def _block_runs(block) -> List[Tuple[str, bool]]:
    runs: List[Tuple[str, bool]] = []
    for node in block.descendants:
        if type(node) is not NavigableString:
            continue
        marked = node.find_parent(HIGHLIGHT_TAG) is not None
        runs.append((str(node), marked))
    return runs


def _blocks(html: str) -> List[Tuple[str, List[Tuple[str, bool]]]]:
    soup = BeautifulSoup(html or "", "html.parser")
    blocks = [block for block in soup.find_all(BLOCK_TAGS) if block.find_parent(BLOCK_TAGS) is None]
    if not blocks:
        return [("p", [(line, False)]) for line in soup.get_text().split("\n")]
    return [(block.name, _block_runs(block)) for block in blocks]


def _layout(html: str, width: int, dpi: int, highlight: bool) -> Tuple[List[_Glyph], int]:
    margin = mm_to_px(MARGIN_MM, dpi)
    content_width = max(1, width - 2 * margin)
    body_font = _load_font(pt_to_px(BODY_FONT_PT, dpi))
    heading_font = _load_font(pt_to_px(HEADING_FONT_PT, dpi))
    measure = ImageDraw.Draw(Image.new("RGB", (1, 1)))
    glyphs: List[_Glyph] = []
    y = margin
    for tag, runs in _blocks(html):
        font = heading_font if tag in _HEADING_TAGS else body_font
        size_pt = HEADING_FONT_PT if tag in _HEADING_TAGS else BODY_FONT_PT
        line_height = int(pt_to_px(size_pt, dpi) * LINE_SPACING)
        x = 0
        for run_text, marked in runs:
            for token in _TOKEN_RE.findall(run_text.replace("\n", " ")):
                token_width = int(measure.textlength(token, font=font))
                if x > 0 and x + token_width > content_width and token.strip():
                    x = 0
                    y += line_height
                if x == 0 and not token.strip():
                    continue
                glyphs.append(
                    _Glyph(
                        x=margin + x,
                        y=y,
                        text=token,
                        marked=marked and highlight,
                        font=font,
                        width=token_width,
                        height=line_height,
                    )
                )
                x += token_width
        y += line_height
    return glyphs, y + margin


def rasterize_view(html: str, *, dpi: int = 96, highlight: bool = True) -> Image.Image:
    """Draw the rendered view onto a page-wide white bitmap."""
    width = mm_to_px(PAGE_WIDTH_MM, dpi)
    glyphs, height = _layout(html, width, dpi, highlight)
    bitmap = Image.new("RGB", (width, max(1, height)), BACKGROUND)
    draw = ImageDraw.Draw(bitmap)
    for glyph in glyphs:
        if glyph.marked:
            draw.rectangle(
                (glyph.x, glyph.y, glyph.x + glyph.width, glyph.y + glyph.height - 1),
                fill=HIGHLIGHT_FILL,
            )
    for glyph in glyphs:
        draw.text((glyph.x, glyph.y), glyph.text, fill=TEXT_FILL, font=glyph.font)
    return bitmap


def paginate_bitmap(bitmap: Image.Image, *, dpi: int = 96) -> List[Image.Image]:
    """Tile a bitmap across fixed-size pages.

    The bitmap is scaled to the page width. Page ``n`` shows it shifted up by
    the height already consumed by the pages before it; tiling stops once the
    remaining height is used up.
    """
    if bitmap.width <= 0 or bitmap.height <= 0:
        raise ExportError("pdf_empty_view")
    page_width = mm_to_px(PAGE_WIDTH_MM, dpi)
    page_height = mm_to_px(PAGE_HEIGHT_MM, dpi)
    scaled_height = max(1, int(round(bitmap.height * page_width / bitmap.width)))
    source = bitmap.convert("RGB")
    if source.size != (page_width, scaled_height):
        source = source.resize((page_width, scaled_height))

    pages: List[Image.Image] = []
    position = 0
    height_left = scaled_height
    while True:
        page = Image.new("RGB", (page_width, page_height), BACKGROUND)
        page.paste(source, (0, position))
        pages.append(page)
        height_left -= page_height
        if height_left <= 0:
            break
        position -= page_height
    return pages


def build_pdf(bitmap: Image.Image, *, dpi: int = 96) -> bytes:
    pages = paginate_bitmap(bitmap, dpi=dpi)
    buffer = BytesIO()
    try:
        pages[0].save(
            buffer,
            format="PDF",
            save_all=True,
            append_images=pages[1:],
            resolution=float(dpi),
        )
    except (OSError, ValueError) as exc:
        raise ExportError(f"pdf_render_failed:{exc}") from exc
    return buffer.getvalue()
