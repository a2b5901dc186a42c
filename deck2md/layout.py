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
"""把版面子结构（表格、列表、并排文本块）近似为 Markdown。

这些转换只作用于局部结构，不接触整个 Scene。Markdown 无法表达的版面特征
（单元格合并、多栏）以空格填充或管道表格近似，并在输出中留下标记。
"""

from __future__ import annotations

import re
from functools import cmp_to_key
from typing import List, Optional, Sequence, Union

from deck2md.types import Alignment, LayoutOptions, ListData, ListItem, TableCell, TableElement

MERGED_CELLS_MARKER = '<!-- merged cells approximated -->'

_HEADING_RE = re.compile(r'^(#{1,6})\s+(.+)$', re.MULTILINE)

_DIVIDERS = {
    'simple': '\n---\n\n',
    'dashed': '\n---\n\n',
    'thick': '\n' + '═' * 40 + '\n\n',
    'dotted': '\n' + ' '.join(['•'] * 21) + '\n\n',
}

_HEADER_FOOTER_MARKERS = {
    'header': '🔝',
    'footer': '🔻',
}


def wrap_emphasis(text: str, bold: bool = False, italic: bool = False) -> str:
    """按需包裹 ``**``/``*``；已有标记时不再重复包裹，多次调用结果不变。"""
    if not text:
        return text
    # 转义过的 \* 不算已有标记
    plain = text.replace('\\*', '')
    if bold and '**' not in plain:
        text = f'**{text}**'
    if italic and '*' not in plain:
        text = f'*{text}*'
    return text


def _headings_to_bold(text: str) -> str:
    # 单元格内无法使用标题，一二级标题转为大写粗体
    def repl(m):
        content = m.group(2)
        return f'**{content.upper()}**' if len(m.group(1)) <= 2 else f'**{content}**'

    return _HEADING_RE.sub(repl, text)


def _align(content: str, alignment: Optional[Alignment], min_width: int) -> str:
    width = max(len(content), min_width)
    match alignment:
        case Alignment.Center:
            padding = (width - len(content)) // 2
            return ' ' * padding + content + ' ' * padding
        case Alignment.Right:
            return content.rjust(width)
    return content


def _separator(alignment: Optional[Alignment], preserve: bool) -> str:
    if not preserve or alignment is None:
        return ' --- '
    match alignment:
        case Alignment.Center:
            return ':---:'
        case Alignment.Right:
            return ' ---:'
    return ':--- '


def format_cell(cell: TableCell, options: LayoutOptions) -> str:
    content = _headings_to_bold(cell.text.strip())
    content = content.replace('|', '\\|').replace('\n', options.line_break_marker)
    content = wrap_emphasis(content, cell.bold, cell.italic)
    if cell.colspan > 1:
        content += ' ' * ((cell.colspan - 1) * options.colspan_padding)
    if options.preserve_alignment and cell.alignment is not None:
        content = _align(content, cell.alignment, options.min_cell_width)
    if options.preserve_colors and cell.background:
        content += f' <!-- bg:{cell.background} -->'
    return content


def format_table(table: TableElement, options: Optional[LayoutOptions] = None) -> str:
    """把单元格网格渲染为管道表格。

    第 0 行总是表头并紧跟分隔行。被横向合并的延续格不输出，短行用空单元格补齐；
    只要存在合并，表格后追加 ``<!-- merged cells approximated -->``。
    """
    options = options or LayoutOptions()
    if not table.rows:
        return ''

    rows: List[List[TableCell]] = [[c for c in row.cells if not c.h_merged] for row in table.rows]
    col_count = max(len(r) for r in rows)
    if col_count == 0:
        return ''
    approximated = any(c.colspan > 1 or c.rowspan > 1 or c.merged for row in table.rows for c in row.cells)

    lines = []
    for row_idx, cells in enumerate(rows):
        rendered = [format_cell(c, options) for c in cells]
        rendered += [''] * (col_count - len(rendered))
        lines.append('|' + ''.join(f' {c} |' for c in rendered))
        if row_idx == 0:
            alignments = [c.alignment for c in cells] + [None] * (col_count - len(cells))
            lines.append('|' + ''.join(f'{_separator(a, options.preserve_alignment)}|' for a in alignments))

    markdown = '\n'.join(lines) + '\n'
    if approximated:
        markdown += MERGED_CELLS_MARKER + '\n'
    return markdown


def format_list(list_data: Optional[ListData], options: Optional[LayoutOptions] = None) -> str:
    """递归渲染有序/无序列表，每层缩进两个空格。"""
    if list_data is None or not list_data.items:
        return ''
    marker = '1.' if list_data.ordered else '-'
    lines = []

    def walk(items: Sequence[ListItem], level: int):
        for item in items:
            text = wrap_emphasis(item.text.strip(), item.bold, item.italic)
            lines.append(f"{'  ' * level}{marker} {text}")
            if item.children:
                walk(item.children, level + 1)

    walk(list_data.items, 0)
    return '\n'.join(lines) + '\n'


def format_columns(blocks: Optional[Sequence[str]], options: Optional[LayoutOptions] = None) -> str:
    """把并排的文本块近似为多栏。

    实质性栏（strip 后超过阈值）不超过 1 个，或多于 max_columns 个时退化为段落拼接；
    否则输出带 ``Column k`` 表头的单行管道表格。
    """
    options = options or LayoutOptions()
    if not blocks:
        return ''
    blocks = [b or '' for b in blocks]
    substantial = [b for b in blocks if len(b.strip()) > options.substantial_threshold]

    if len(substantial) <= 1:
        return '\n\n'.join(b for b in blocks if b.strip())
    if len(substantial) > options.max_columns:
        return '\n\n'.join(substantial)

    header = '|' + ''.join(f' Column {i} |' for i in range(1, len(substantial) + 1))
    separator = '|' + ' --- |' * len(substantial)
    cells = []
    for content in substantial:
        if len(content) > options.column_char_limit:
            content = content[:options.column_char_limit] + options.truncation_marker
        cells.append(content.replace('|', '\\|').replace('\n', options.line_break_marker))
    row = '|' + ''.join(f' {c} |' for c in cells)
    return '\n'.join([header, separator, row]) + '\n'


def format_with_size(text: str, size: Union[float, str, None]) -> str:
    """按字号近似为标题级别（≥24 一级 … ≥14 四级，≤10 小字）。"""
    if not size or size == 'normal':
        return text
    size = float(size)
    if size >= 24:
        return f'# {text}'
    if size >= 20:
        return f'## {text}'
    if size >= 16:
        return f'### {text}'
    if size >= 14:
        return f'#### {text}'
    if size <= 10:
        return f'<small>{text}</small>'
    return text


def create_divider(style: str = 'simple') -> str:
    return _DIVIDERS.get(style, _DIVIDERS['simple'])


def format_header_footer(content: str, kind: str = 'header') -> str:
    if not content or not content.strip():
        return ''
    marker = _HEADER_FOOTER_MARKERS.get(kind, _HEADER_FOOTER_MARKERS['header'])
    body = content.strip().replace('\n', '\n> ')
    return f'<!-- Document {kind} -->\n> {marker} {body}\n\n'


def sort_by_position(elements: Sequence, tolerance: int = 200) -> list:
    """自上而下、同一行内自左向右排序。y 差值小于 tolerance 视为同一行。"""

    def compare(a, b):
        y_diff = a.position.y - b.position.y
        if abs(y_diff) < tolerance:
            return a.position.x - b.position.x
        return y_diff

    return sorted(elements, key=cmp_to_key(compare))
