"""版面近似：表格、列表、多栏、字号、分隔线、页眉页脚、排序。"""

import pytest

from deck2md.layout import (
    MERGED_CELLS_MARKER,
    create_divider,
    format_columns,
    format_header_footer,
    format_list,
    format_table,
    format_with_size,
    sort_by_position,
    wrap_emphasis,
)
from deck2md.types import (
    Alignment,
    LayoutOptions,
    ListData,
    ListItem,
    Position,
    TableCell,
    TableElement,
    TableRow,
    TextElement,
)


def _table(*rows):
    return TableElement(id='t', rows=[TableRow(cells=list(cells)) for cells in rows])


def _cells(*texts):
    return [TableCell(text=t) for t in texts]


# ---------------------------------------------------------------------------
# 强调
# ---------------------------------------------------------------------------

@pytest.mark.parametrize('bold,italic,expected', [
    (True, False, '**word**'),
    (False, True, '*word*'),
    (True, True, '***word***'),
    (False, False, 'word'),
])
def test_wrap_emphasis(bold, italic, expected):
    assert wrap_emphasis('word', bold, italic) == expected


def test_wrap_emphasis_is_idempotent():
    once = wrap_emphasis('word', bold=True, italic=True)
    assert wrap_emphasis(once, bold=True, italic=True) == once
    assert wrap_emphasis(wrap_emphasis('x', bold=True), bold=True) == '**x**'


def test_wrap_emphasis_ignores_escaped_asterisks():
    assert wrap_emphasis('a\\*b', italic=True) == '*a\\*b*'
    assert wrap_emphasis('\\*\\*x\\*\\*', bold=True) == '**\\*\\*x\\*\\***'


# ---------------------------------------------------------------------------
# 表格
# ---------------------------------------------------------------------------

def test_simple_table():
    markdown = format_table(_table(_cells('Name', 'Value'), _cells('alpha', '1')))
    assert markdown == '| Name | Value |\n| --- | --- |\n| alpha | 1 |\n'


def test_first_row_is_header_and_separator_follows_it():
    lines = format_table(_table(_cells('a', 'b'), _cells('c', 'd'), _cells('e', 'f'))).splitlines()
    assert lines[1] == '| --- | --- |'
    assert sum(1 for line in lines if '---' in line) == 1


def test_separator_reflects_alignment():
    header = [TableCell(text='L', alignment=Alignment.Left), TableCell(text='C', alignment=Alignment.Center),
              TableCell(text='R', alignment=Alignment.Right), TableCell(text='N')]
    lines = format_table(_table(header, _cells('1', '2', '3', '4'))).splitlines()
    assert lines[1] == '|:--- |:---:| ---:| --- |'


def test_alignment_padding_can_be_disabled():
    header = [TableCell(text='C', alignment=Alignment.Center)]
    markdown = format_table(_table(header), LayoutOptions(preserve_alignment=False))
    assert markdown.splitlines() == ['| C |', '| --- |']


def test_cell_text_is_escaped_and_line_breaks_marked():
    markdown = format_table(_table(_cells('a|b', 'one\ntwo')))
    assert markdown.splitlines()[0] == '| a\\|b | one<br>two |'


def test_bold_cell_and_heading_in_cell():
    row = [TableCell(text='Total', bold=True), TableCell(text='# Heading')]
    assert format_table(_table(row)).splitlines()[0] == '| **Total** | **HEADING** |'


def test_horizontal_merge_pads_origin_and_adds_marker():
    header = [TableCell(text='Wide', colspan=2), TableCell(text='', merged=True, h_merged=True)]
    markdown = format_table(_table(header, _cells('a', 'b')))
    lines = markdown.splitlines()
    assert lines[0] == '| Wide    |  |'
    assert lines[2] == '| a | b |'
    assert lines[-1] == MERGED_CELLS_MARKER


def test_unmerged_table_has_no_marker():
    assert MERGED_CELLS_MARKER not in format_table(_table(_cells('a')))


def test_background_comment_when_colors_preserved():
    row = [TableCell(text='x', background='#FF0000')]
    markdown = format_table(_table(row), LayoutOptions(preserve_colors=True))
    assert '<!-- bg:#FF0000 -->' in markdown


def test_empty_table():
    assert format_table(_table()) == ''


# ---------------------------------------------------------------------------
# 列表
# ---------------------------------------------------------------------------

def test_nested_unordered_list():
    data = ListData(items=[
        ListItem(text='Parent', children=[ListItem(text='Child', level=1, bold=True)]),
        ListItem(text='Sibling'),
    ])
    assert format_list(data) == '- Parent\n  - **Child**\n- Sibling\n'


def test_ordered_list_uses_number_markers():
    data = ListData(ordered=True, items=[ListItem(text='one'), ListItem(text='two')])
    assert format_list(data) == '1. one\n1. two\n'


def test_empty_list():
    assert format_list(None) == ''
    assert format_list(ListData()) == ''


# ---------------------------------------------------------------------------
# 多栏
# ---------------------------------------------------------------------------

def test_single_substantial_block_is_plain_paragraphs():
    blocks = ['This block has plenty of text', 'short']
    assert format_columns(blocks) == 'This block has plenty of text\n\nshort'


def test_too_many_substantial_blocks_fall_back_to_paragraphs():
    blocks = [f'Substantial block number {i}' for i in range(5)]
    assert format_columns(blocks) == '\n\n'.join(blocks)


def test_two_substantial_blocks_become_a_table():
    markdown = format_columns(['Left column content', 'Right column content', 'tiny'])
    assert markdown == ('| Column 1 | Column 2 |\n'
                        '| --- | --- |\n'
                        '| Left column content | Right column content |\n')


def test_column_content_is_truncated():
    long_text = 'x' * 250
    markdown = format_columns([long_text, 'Second substantial block'])
    row = markdown.splitlines()[2]
    assert 'x' * 200 + '...' in row
    assert 'x' * 201 not in row


def test_empty_columns():
    assert format_columns([]) == ''
    assert format_columns(None) == ''


# ---------------------------------------------------------------------------
# 字号、分隔线、页眉页脚
# ---------------------------------------------------------------------------

@pytest.mark.parametrize('size,expected', [
    (28, '# T'),
    (24, '# T'),
    (20, '## T'),
    (16, '### T'),
    (14, '#### T'),
    (12, 'T'),
    (10, '<small>T</small>'),
    ('normal', 'T'),
    (None, 'T'),
])
def test_format_with_size(size, expected):
    assert format_with_size('T', size) == expected


def test_dividers():
    assert create_divider('simple') == '\n---\n\n'
    assert create_divider('dashed') == '\n---\n\n'
    assert create_divider('thick') == '\n' + '═' * 40 + '\n\n'
    assert create_divider('dotted').strip() == ' '.join(['•'] * 21)
    assert create_divider('unknown') == create_divider('simple')


def test_header_footer():
    assert format_header_footer('Page 3', 'footer') == '<!-- Document footer -->\n> 🔻 Page 3\n\n'
    assert format_header_footer('Acme\nConfidential', 'header') == (
        '<!-- Document header -->\n> 🔝 Acme\n> Confidential\n\n')
    assert format_header_footer('   ', 'footer') == ''


# ---------------------------------------------------------------------------
# 排序
# ---------------------------------------------------------------------------

def _at(name, x, y):
    return TextElement(id=name, position=Position(x=x, y=y))


def test_sort_by_position_rows_then_columns():
    elements = [_at('bottom', 0, 5000), _at('right', 3000, 100), _at('left', 1000, 0)]
    assert [e.id for e in sort_by_position(elements)] == ['left', 'right', 'bottom']


def test_sort_by_position_tolerance():
    elements = [_at('b', 2000, 0), _at('a', 1000, 150)]
    assert [e.id for e in sort_by_position(elements)] == ['a', 'b']
    assert [e.id for e in sort_by_position(elements, tolerance=100)] == ['b', 'a']
