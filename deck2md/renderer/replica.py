# Copyright 2024 Liu Siyao
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#
# Modifications Copyright 2025-2026 vanilla1108
"""合成复刻截图：把每页的元素摆成绝对定位的 HTML，再用无头 Chromium 截图。

同一个页面对象被所有幻灯片复用，截图严格串行。
"""

from __future__ import annotations

import base64
import html
import logging
import mimetypes
import posixpath

from deck2md.archive import Archive
from deck2md.errors import CaptureTimeoutError, StrategyUnavailableError
from deck2md.renderer.base import SlideRenderer, describe_saved, slide_filename
from deck2md.renderer.capability import BROWSER_REMEDIATION
from deck2md.renderer.geometry import compose_group, emu_to_px, fit_scale
from deck2md.types import ElementType, RasterResult, Scene, Slide, SlideFailure, TextElement

logger = logging.getLogger(__name__)

# 浏览器无法直接显示的图片格式，按未解析处理
_UNRENDERABLE_IMAGES = ('.emf', '.wmf', '.tif', '.tiff')

_CSS = '''
* { margin: 0; padding: 0; box-sizing: border-box; }
body {
    width: %(width)spx; height: %(height)spx; background: %(background)s;
    font-family: 'Calibri', 'Arial', sans-serif; overflow: hidden; position: relative;
    display: flex; align-items: center; justify-content: center;
}
.slide-container {
    width: %(slide_width)spx; height: %(slide_height)spx; position: relative;
    background: %(background)s; overflow: hidden;
}
.slide-element { position: absolute; overflow: hidden; }
.text-element { line-height: 1.2; color: #000000; word-wrap: break-word; padding: 4px; }
.text-element p { margin: 0; white-space: pre-wrap; }
.shape-element { border: 1px solid #666666; background: #f0f0f0; }
.image-element img { width: 100%%; height: 100%%; object-fit: fill; }
.image-placeholder {
    background: linear-gradient(45deg, #f0f0f0 25%%, transparent 25%%),
                linear-gradient(-45deg, #f0f0f0 25%%, transparent 25%%),
                linear-gradient(45deg, transparent 75%%, #f0f0f0 75%%),
                linear-gradient(-45deg, transparent 75%%, #f0f0f0 75%%);
    background-size: 20px 20px;
    background-position: 0 0, 0 10px, 10px -10px, -10px 0px;
    border: 2px dashed #ccc;
    display: flex; align-items: center; justify-content: center; color: #666; font-size: 14px;
}
.chart-placeholder {
    background: linear-gradient(135deg, #e3f2fd 0%%, #bbdefb 100%%);
    border: 2px solid #2196f3;
    display: flex; align-items: center; justify-content: center;
    color: #1976d2; font-size: 14px; font-weight: bold;
}
.table-element { border: 1px solid #ccc; background: #fff; }
.table-element table { width: 100%%; height: 100%%; border-collapse: collapse; }
.table-element td { border: 1px solid #ddd; padding: 4px 8px; font-size: 12px; vertical-align: top; }
.placeholder-title {
    position: absolute; inset: 0; display: flex; align-items: center; justify-content: center;
    font-size: 32px; color: #666666;
}
'''


def _box(element, scale: float) -> str:
    left = emu_to_px(element.position.x, scale)
    top = emu_to_px(element.position.y, scale)
    width = emu_to_px(element.size.width, scale)
    height = emu_to_px(element.size.height, scale)
    style = f'left: {left}px; top: {top}px; width: {width}px; height: {height}px; z-index: {element.position.z};'
    if element.style is not None and element.style.rotation:
        style += f' transform: rotate({element.style.rotation:g}deg);'
    return style


def _text_html(element: TextElement, scale: float) -> str:
    blocks = []
    for paragraph in element.paragraphs:
        align = paragraph.alignment.value
        spans = []
        for run in paragraph.runs:
            if run.text == '\n':
                spans.append('<br>')
                continue
            font = run.font
            css = []
            if font is not None:
                css.append(f"font-family: '{html.escape(font.family)}', sans-serif")
                css.append(f'font-size: {max(font.size * 96 / 72 * scale, 1):.1f}px')
                if font.color:
                    css.append(f'color: {font.color}')
                if font.bold:
                    css.append('font-weight: bold')
                if font.italic:
                    css.append('font-style: italic')
                if font.underline:
                    css.append('text-decoration: underline')
            spans.append(f'<span style="{"; ".join(css)}">{html.escape(run.text)}</span>')
        indent = paragraph.level * 24 * scale
        bullet = '&bull; ' if paragraph.bullet == 'bullet' else ''
        blocks.append(f'<p style="text-align: {align}; padding-left: {indent:.1f}px">{bullet}{"".join(spans)}</p>')
    fill = ''
    if element.style is not None and element.style.fill:
        fill = f' background: {element.style.fill};'
    return f'<div class="slide-element text-element" style="{_box(element, scale)}{fill}">{"".join(blocks)}</div>'


def _image_html(element, archive: Archive, scale: float) -> str:
    data = archive.get(element.image_path) if element.resolved else None
    ext = posixpath.splitext(element.image_path)[1].lower()
    if data is None or ext in _UNRENDERABLE_IMAGES:
        return f'<div class="slide-element image-placeholder" style="{_box(element, scale)}">&#128247; Image</div>'
    mime = mimetypes.guess_type(element.image_path)[0] or 'image/png'
    encoded = base64.b64encode(data).decode('ascii')
    return (f'<div class="slide-element image-element" style="{_box(element, scale)}">'
            f'<img src="data:{mime};base64,{encoded}" alt="{html.escape(element.alt_text)}"></div>')


def element_html(element, archive: Archive, scale: float) -> str:
    match element.type:
        case ElementType.Text:
            return _text_html(element, scale)
        case ElementType.Shape:
            style = element.style
            fill = style.fill if style is not None and style.fill else '#f0f0f0'
            stroke = ''
            if style is not None and style.stroke:
                width = max(emu_to_px(style.stroke_width or 12700, scale), 1)
                stroke = f' border: {width}px solid {style.stroke};'
            opacity = f' opacity: {style.opacity:g};' if style is not None and style.opacity is not None else ''
            return (f'<div class="slide-element shape-element" style="{_box(element, scale)} '
                    f'background: {fill};{stroke}{opacity}"></div>')
        case ElementType.Image:
            return _image_html(element, archive, scale)
        case ElementType.Chart:
            return (f'<div class="slide-element chart-placeholder" style="{_box(element, scale)}">'
                    f'&#128202; {html.escape(element.chart_type)}</div>')
        case ElementType.Table:
            rows = []
            for row in element.rows:
                cells = []
                for cell in row.cells:
                    if cell.merged:
                        continue
                    attrs = f' colspan="{cell.colspan}"' if cell.colspan > 1 else ''
                    attrs += f' rowspan="{cell.rowspan}"' if cell.rowspan > 1 else ''
                    bg = f' style="background: {cell.background}"' if cell.background else ''
                    text = html.escape(cell.text).replace('\n', '<br>')
                    cells.append(f'<td{attrs}{bg}>{text}</td>')
                rows.append(f'<tr>{"".join(cells)}</tr>')
            return (f'<div class="slide-element table-element" style="{_box(element, scale)}">'
                    f'<table>{"".join(rows)}</table></div>')
        case ElementType.Group:
            # 子元素先按组原点偏移为绝对坐标再渲染
            return ''.join(element_html(child, archive, scale) for child in compose_group(element))
    return ''


def slide_html(slide: Slide, archive: Archive, width: int, height: int) -> str:
    """生成单页的独立 HTML 文档。"""
    scale = fit_scale(slide.dimensions, width, height)
    slide_width = emu_to_px(slide.dimensions.width, scale)
    slide_height = emu_to_px(slide.dimensions.height, scale)
    background = slide.background.color if slide.background is not None else '#FFFFFF'

    if slide.placeholder:
        body = f'<div class="placeholder-title">{html.escape(slide.title or "")}</div>'
    else:
        body = ''.join(element_html(e, archive, scale) for e in slide.elements)

    css = _CSS % dict(width=width, height=height, background=background, slide_width=slide_width,
                      slide_height=slide_height)
    return (f'<!DOCTYPE html><html lang="en"><head><meta charset="UTF-8">'
            f'<title>Slide {slide.number}</title><style>{css}</style></head>'
            f'<body><div class="slide-container">{body}</div></body></html>')


class ReplicaRenderer(SlideRenderer):
    method = 'replica'

    def __init__(self, options=None, output_dir='slides', capabilities=None):
        super().__init__(options, output_dir)
        self._playwright = None
        self._browser = None
        self._page = None

    def open(self):
        if self._page is not None:
            return
        try:
            from playwright.sync_api import Error as PlaywrightError
            from playwright.sync_api import sync_playwright
        except ImportError as e:
            raise StrategyUnavailableError('replica', 'playwright is not installed', BROWSER_REMEDIATION, e) from e

        try:
            self._playwright = sync_playwright().start()
            self._browser = self._playwright.chromium.launch(headless=self.options.headless)
            self._page = self._browser.new_page(
                viewport={'width': self.options.width, 'height': self.options.height},
                device_scale_factor=self.options.device_scale_factor,
            )
        except PlaywrightError as e:
            self.close()
            raise StrategyUnavailableError('replica', f'Chromium could not be launched: {e}',
                                           BROWSER_REMEDIATION, e) from e
        super().open()
        logger.info('headless Chromium started')

    def capture(self, slide: Slide, archive: Archive):
        from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

        fmt = self.options.format
        path = self.output_dir / slide_filename(slide.number, fmt)
        content = slide_html(slide, archive, self.options.width, self.options.height)
        try:
            self._page.set_content(content, timeout=self.options.timeout, wait_until='load')
            self._page.screenshot(
                path=str(path),
                type=fmt,
                quality=self.options.quality if fmt == 'jpeg' else None,
                clip={'x': 0, 'y': 0, 'width': self.options.width, 'height': self.options.height},
                timeout=self.options.timeout,
            )
        except PlaywrightTimeoutError as e:
            raise CaptureTimeoutError(slide.number, self.options.timeout, e) from e
        return describe_saved(path, slide.number, fmt)

    def render(self, scene: Scene, archive: Archive) -> RasterResult:
        from playwright.sync_api import Error as PlaywrightError

        self.open()
        self.output_dir.mkdir(parents=True, exist_ok=True)
        result = self.new_result()
        for slide in scene.slides:
            try:
                image = self.capture(slide, archive)
            except CaptureTimeoutError as e:
                logger.warning(f'Slide {slide.number} capture timed out: {e}')
                result.failures.append(SlideFailure(slide_number=slide.number, reason=str(e), timed_out=True))
                continue
            except (PlaywrightError, OSError) as e:
                logger.warning(f'Failed to render slide {slide.number}, skipped: {e}')
                result.failures.append(SlideFailure(slide_number=slide.number, reason=str(e)))
                continue
            logger.info(f'rendered slide {slide.number}: {image.saved_path} ({image.byte_size} bytes)')
            result.slide_images.append(image)
        return result

    def close(self):
        page, browser, playwright = self._page, self._browser, self._playwright
        self._page = self._browser = self._playwright = None
        try:
            if page is not None:
                page.close()
        finally:
            try:
                if browser is not None:
                    browser.close()
            finally:
                if playwright is not None:
                    playwright.stop()
        super().close()
