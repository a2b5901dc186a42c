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

import io
import logging
import re
import urllib.parse
from typing import Dict, List, Optional, Sequence

from rapidfuzz import fuzz

from deck2md.layout import (
    create_divider,
    format_columns,
    format_header_footer,
    format_list,
    format_table,
    format_with_size,
    sort_by_position,
    wrap_emphasis,
)
from deck2md.renderer.geometry import flatten_elements
from deck2md.types import (
    ChartData,
    ChartElement,
    ElementType,
    ImageElement,
    ListData,
    ListItem,
    MarkdownOptions,
    Scene,
    Slide,
    SlideFailure,
    SlideImage,
    TableElement,
    TextElement,
    TextParagraph,
    TextRun,
)

logger = logging.getLogger(__name__)

_TITLE_PLACEHOLDERS = ('title', 'ctrTitle')
_FOOTER_PLACEHOLDERS = ('ftr', 'dt', 'sldNum')
_HEADER_PLACEHOLDERS = ('hdr',)


class MarkdownFormatter:
    # 把 Scene 合成为 Markdown，写入内存缓冲区

    def __init__(self, options: Optional[MarkdownOptions] = None):
        self.options = options or MarkdownOptions()
        self.buffer = io.StringIO()
        self.media: Dict[str, str] = {}
        self.charts: Dict[str, ChartData] = {}
        self.esc_re1 = re.compile(r'([\\\*`!_\{\}\[\]\(\)#\+-\.])')
        self.esc_re2 = re.compile(r'(<[^>]+>)')

    def format(self, scene: Scene, media: Optional[Dict[str, str]] = None,
               charts: Optional[Dict[str, ChartData]] = None) -> str:
        """合成整个 Scene。

        参数:
            scene: 已解析的场景图。
            media: 归档内图片路径 → Markdown 中引用的位置（由图片提取器给出）。
            charts: 图表部件路径 → 图表数据（由图表提取器给出）。
        """
        self.buffer = io.StringIO()
        self.media = media or {}
        self.charts = charts or {}

        last_title = None
        first_title_seen = False
        for slide_idx, slide in enumerate(scene.slides):
            if not self.options.disable_slide_number:
                self.write(f'<!-- slide: {slide.number} -->\n')

            title = (slide.title or '').strip()
            if title:
                # 首个标题为一级，后续标题为二级
                level = 2 if first_title_seen else 1
                if last_title and fuzz.ratio(last_title, title, score_cutoff=92):
                    # 与上一页标题相同则跳过，或添加 (cont.) 后缀
                    if self.options.keep_similar_titles:
                        self.put_title(f'{title} (cont.)', level)
                else:
                    self.put_title(title, level)
                last_title = title
                first_title_seen = True

            if slide.placeholder:
                self.put_comment(f'slide {slide.number} could not be parsed')
            else:
                self.put_slide_body(slide)

            if slide_idx < len(scene.slides) - 1 and self.options.enable_slides:
                self.write(create_divider(self.options.divider_style))

        text = self.buffer.getvalue()
        if self.options.compress_blank_lines:
            text = compress_blank_lines(text)
        return text

    def put_slide_body(self, slide: Slide):
        # 没有文字的文本框只有视觉作用，不参与分栏判断
        elements = [e for e in flatten_elements(slide.elements) if e.type != ElementType.Text or e.text.strip()]
        elements = sort_by_position(elements, self.options.same_row_tolerance)
        if not self.options.try_multi_column:
            for element in elements:
                self.put_element(element, slide)
            return

        for row in self._group_rows(elements):
            text_blocks = [e for e in row if e.type == ElementType.Text and e.placeholder not in _FOOTER_PLACEHOLDERS
                           and not self._is_slide_title(e, slide)]
            if len(row) > 1 and len(text_blocks) == len(row):
                blocks = [self._capture(self.put_text, e) for e in text_blocks]
                self.write(format_columns([b.strip() for b in blocks], self.options.layout))
                self.write('\n')
            else:
                for element in row:
                    self.put_element(element, slide)

    def _group_rows(self, elements: Sequence) -> List[list]:
        rows = []
        for element in elements:
            if rows and abs(element.position.y - rows[-1][0].position.y) < self.options.same_row_tolerance:
                rows[-1].append(element)
            else:
                rows.append([element])
        return rows

    def _capture(self, fn, *args) -> str:
        saved = self.buffer
        self.buffer = io.StringIO()
        try:
            fn(*args)
            return self.buffer.getvalue()
        finally:
            self.buffer = saved

    @staticmethod
    def _is_slide_title(element: TextElement, slide: Slide) -> bool:
        if element.placeholder not in _TITLE_PLACEHOLDERS or not slide.title:
            return False
        return ' '.join(p.text.strip() for p in element.paragraphs if p.text.strip()) == slide.title

    def put_element(self, element, slide: Slide):
        match element.type:
            case ElementType.Text:
                if not self._is_slide_title(element, slide):
                    self.put_text(element)
            case ElementType.Image:
                self.put_image(element)
            case ElementType.Table:
                self.put_table(element)
            case ElementType.Chart:
                self.put_chart(element)
            case ElementType.Shape:
                pass

    def put_text(self, element: TextElement):
        if not element.text.strip():
            return
        if element.placeholder in _FOOTER_PLACEHOLDERS:
            self.write(format_header_footer(element.text, 'footer'))
            return
        if element.placeholder in _HEADER_PLACEHOLDERS:
            self.write(format_header_footer(element.text, 'header'))
            return

        pending: List[TextParagraph] = []
        for paragraph in element.paragraphs:
            if not paragraph.text.strip():
                continue
            if paragraph.bullet != 'none':
                if pending and pending[0].bullet != paragraph.bullet and paragraph.level == 0:
                    self.put_list(pending)
                    pending = []
                pending.append(paragraph)
                continue
            if pending:
                self.put_list(pending)
                pending = []
            text = self.get_formatted_runs(paragraph)
            if self.options.size_headings:
                size = next((r.font.size for r in paragraph.runs if r.font is not None and r.text.strip()), None)
                text = format_with_size(text, size)
            self.put_para(text)
        if pending:
            self.put_list(pending)

    def put_list(self, paragraphs: List[TextParagraph]):
        roots: List[ListItem] = []
        stack: List[ListItem] = []
        for paragraph in paragraphs:
            item = ListItem(text=self.get_formatted_runs(paragraph), level=paragraph.level)
            while stack and stack[-1].level >= item.level:
                stack.pop()
            if stack:
                stack[-1].children.append(item)
            else:
                roots.append(item)
            stack.append(item)
        list_data = ListData(ordered=paragraphs[0].bullet == 'numbered', items=roots)
        self.write(format_list(list_data, self.options.layout))
        self.write('\n')

    def get_formatted_runs(self, paragraph: TextParagraph) -> str:
        # 相邻同样式的 run 先合并，避免 **a****b**
        groups = []
        for run in paragraph.runs:
            if not run.text:
                continue
            key = self._run_style(run)
            if groups and (groups[-1][0] == key or not run.text.strip()):
                groups[-1][1] += run.text
            else:
                groups.append([key, run.text])

        res = ''
        for (bold, italic, hyperlink), text in groups:
            core = text.strip()
            if not core:
                res += text
                continue
            lead = text[:len(text) - len(text.lstrip())]
            trail = text[len(text.rstrip()):]
            if not self.options.disable_escaping:
                core = self.get_escaped(core)
            if hyperlink:
                core = self.get_hyperlink(core, hyperlink)
            res += lead + wrap_emphasis(core, bold, italic) + trail
        return res.strip()

    @staticmethod
    def _run_style(run: TextRun):
        font = run.font
        return (font is not None and font.bold, font is not None and font.italic, run.hyperlink)

    def get_hyperlink(self, text, url):
        return '[' + text + '](' + url + ')'

    def esc_repl(self, match):
        return '\\' + match.group(0)

    def get_escaped(self, text):
        text = re.sub(self.esc_re1, self.esc_repl, text)
        text = re.sub(self.esc_re2, self.esc_repl, text)
        return text

    def put_title(self, text, level):
        self.write('#' * level + ' ' + text + '\n\n')

    def put_para(self, text):
        self.write(text + '\n\n')

    def put_comment(self, text):
        self.write(f'<!-- {text} -->\n\n')

    def put_image(self, element: ImageElement):
        if not element.resolved:
            self.put_comment(f'image: unresolved ({element.rel_id or "no reference"})')
            return
        reference = self.media.get(element.image_path, element.image_path)
        self.write(f'![{element.alt_text}]({urllib.parse.quote(reference)})\n\n')

    def put_table(self, element: TableElement):
        markdown = format_table(element, self.options.layout)
        if markdown:
            self.write(markdown + '\n')

    def put_chart(self, element: ChartElement):
        data = self.charts.get(element.chart_path) if element.resolved else None
        if data is None or not data.series:
            self.put_comment('chart: unknown')
            return
        if data.title:
            self.put_para(f'**{data.title}**')
        header = ['Category'] + [s.name or f'Series {i}' for i, s in enumerate(data.series, start=1)]
        rows = [header]
        row_count = max(len(data.categories), max(len(s.values) for s in data.series))
        for idx in range(row_count):
            category = data.categories[idx] if idx < len(data.categories) else ''
            values = []
            for series in data.series:
                value = series.values[idx] if idx < len(series.values) else None
                values.append('' if value is None else f'{value:g}')
            rows.append([category] + values)
        self.put_grid(rows)

    def put_grid(self, table: List[List[str]]):
        gen_table_row = lambda row: '| ' + ' | '.join([c.replace('|', '\\|').replace('\n', '<br>') for c in row]) + ' |'
        self.write(gen_table_row(table[0]) + '\n')
        self.write(gen_table_row(['---' for _ in table[0]]) + '\n')
        if len(table) > 1:
            self.write('\n'.join([gen_table_row(row) for row in table[1:]]) + '\n')
        self.write('\n')

    def write(self, text):
        self.buffer.write(text)


def compress_blank_lines(text: str) -> str:
    """将连续空行压缩为 1 行空行，去掉开头空行，结尾保留单个换行。"""
    normalized = text.replace('\r\n', '\n')
    out_lines = []
    last_was_blank = True
    for line in normalized.split('\n'):
        is_blank = line.strip() == ''
        if is_blank:
            if last_was_blank:
                continue
            out_lines.append('')
            last_was_blank = True
        else:
            out_lines.append(line)
            last_was_blank = False
    compressed = '\n'.join(out_lines).rstrip('\n')
    return compressed + '\n' if compressed else ''


def slide_images_markdown(images: Sequence[SlideImage], title: Optional[str] = None,
                          failures: Sequence[SlideFailure] = ()) -> str:
    """截图模式的 Markdown：每页一个二级标题和一张图片。"""
    entries = [(image.slide_number, f'![Slide {image.slide_number}]({image.saved_path.as_posix()})')
               for image in images]
    entries += [(failure.slide_number, f'<!-- slide {failure.slide_number} could not be captured: {failure.reason} -->')
                for failure in failures]
    parts = []
    if title:
        parts.append(f'# {title}\n')
    for number, body in sorted(entries, key=lambda e: e[0]):
        parts.append(f'## Slide {number}\n\n{body}\n')
    return '\n'.join(parts)
