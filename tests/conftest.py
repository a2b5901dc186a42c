"""测试共享 fixture 和工具函数。

提供：
- 用 python-pptx 现场生成的样本演示文稿（不依赖仓库内二进制样本）
- 手工拼装的最小演示文稿包（用于缺省尺寸、背景、损坏部件等边界情况）
- 文本分割工具（按 slide 注释分割）
"""

import io
import re
import zipfile
from pathlib import Path

import pytest
from lxml import etree
from PIL import Image
from pptx import Presentation
from pptx.chart.data import CategoryChartData
from pptx.enum.chart import XL_CHART_TYPE
from pptx.oxml.ns import qn
from pptx.util import Emu

from deck2md.errors import StrategyUnavailableError
from deck2md.renderer.base import SlideRenderer, describe_saved, encode_image, slide_filename
from deck2md.types import ConversionConfig, MarkdownOptions

# ---------------------------------------------------------------------------
# 常量
# ---------------------------------------------------------------------------

# python-pptx 默认模板为 4:3
PPTX_DEFAULT_WIDTH = 9144000
PPTX_DEFAULT_HEIGHT = 6858000

LAYOUT_TITLE_AND_CONTENT = 1
LAYOUT_BLANK = 6

_NS = (
    'xmlns:a="http://schemas.openxmlformats.org/drawingml/2006/main" '
    'xmlns:r="http://schemas.openxmlformats.org/officeDocument/2006/relationships" '
    'xmlns:p="http://schemas.openxmlformats.org/presentationml/2006/main"'
)
_REL_NS = 'http://schemas.openxmlformats.org/package/2006/relationships'
_RT = 'http://schemas.openxmlformats.org/officeDocument/2006/relationships'


# ---------------------------------------------------------------------------
# 基础工具
# ---------------------------------------------------------------------------

def png_bytes(size=(4, 3), color=(255, 0, 0)) -> bytes:
    buf = io.BytesIO()
    Image.new('RGB', size, color).save(buf, format='PNG')
    return buf.getvalue()


def split_by_slides(text: str) -> dict:
    """按 <!-- slide: N --> 注释拆分输出，返回 {页码: 内容}。"""
    parts = re.split(r'<!-- slide: (\d+) -->', text)
    return {int(parts[i]): parts[i + 1] for i in range(1, len(parts) - 1, 2)}


def save_bytes(prs) -> bytes:
    buf = io.BytesIO()
    prs.save(buf)
    return buf.getvalue()


def replace_part(data: bytes, part_name: str, content: bytes) -> bytes:
    """重写 zip 中的某个部件，其余条目原样保留。"""
    src = zipfile.ZipFile(io.BytesIO(data))
    out = io.BytesIO()
    with zipfile.ZipFile(out, 'w', zipfile.ZIP_DEFLATED) as dst:
        for info in src.infolist():
            payload = content if info.filename == part_name else src.read(info)
            dst.writestr(info.filename, payload)
    return out.getvalue()


def drop_part(data: bytes, part_name: str) -> bytes:
    src = zipfile.ZipFile(io.BytesIO(data))
    out = io.BytesIO()
    with zipfile.ZipFile(out, 'w', zipfile.ZIP_DEFLATED) as dst:
        for info in src.infolist():
            if info.filename != part_name:
                dst.writestr(info.filename, src.read(info))
    return out.getvalue()


def set_group_xfrm(group, off, ext, ch_off, ch_ext):
    """显式设置组的坐标变换，使子元素坐标与 python-pptx 的自动重算无关。"""
    grp_sp_pr = group._element.find(qn('p:grpSpPr'))
    old = grp_sp_pr.find(qn('a:xfrm'))
    if old is not None:
        grp_sp_pr.remove(old)
    xfrm = etree.Element(qn('a:xfrm'))
    for tag, (a, b), keys in (('a:off', off, ('x', 'y')), ('a:ext', ext, ('cx', 'cy')),
                              ('a:chOff', ch_off, ('x', 'y')), ('a:chExt', ch_ext, ('cx', 'cy'))):
        node = etree.SubElement(xfrm, qn(tag))
        node.set(keys[0], str(a))
        node.set(keys[1], str(b))
    grp_sp_pr.insert(0, xfrm)


# ---------------------------------------------------------------------------
# 手工拼装的最小演示文稿包
# ---------------------------------------------------------------------------

def slide_xml(shapes: str = '', background: str = '') -> str:
    return (f'<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
            f'<p:sld {_NS}><p:cSld>{background}<p:spTree>'
            f'<p:nvGrpSpPr><p:cNvPr id="1" name=""/><p:cNvGrpSpPr/><p:nvPr/></p:nvGrpSpPr><p:grpSpPr/>'
            f'{shapes}</p:spTree></p:cSld></p:sld>')


def textbox_xml(shape_id: int, name: str, text: str, x: int = 0, y: int = 0, cx: int = 914400,
                cy: int = 457200) -> str:
    return (f'<p:sp><p:nvSpPr><p:cNvPr id="{shape_id}" name="{name}"/><p:cNvSpPr txBox="1"/><p:nvPr/></p:nvSpPr>'
            f'<p:spPr><a:xfrm><a:off x="{x}" y="{y}"/><a:ext cx="{cx}" cy="{cy}"/></a:xfrm></p:spPr>'
            f'<p:txBody><a:bodyPr/><a:lstStyle/><a:p><a:r><a:rPr lang="en-US"/><a:t>{text}</a:t></a:r></a:p>'
            f'</p:txBody></p:sp>')


def build_package(slides, slide_size=(12192000, 6858000), extra_parts=None) -> bytes:
    """拼装只含 presentation.xml 和若干页面的演示文稿包。

    参数:
        slides: 页面 XML 列表，依次存为 slide1.xml、slide2.xml…
        slide_size: (cx, cy)；为 None 时省略 p:sldSz。
        extra_parts: 额外写入的 {路径: 字节}。
    """
    sld_ids = ''.join(f'<p:sldId id="{256 + i}" r:id="rId{i + 1}"/>' for i in range(len(slides)))
    sld_sz = f'<p:sldSz cx="{slide_size[0]}" cy="{slide_size[1]}"/>' if slide_size else ''
    presentation = (f'<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
                    f'<p:presentation {_NS}><p:sldIdLst>{sld_ids}</p:sldIdLst>{sld_sz}</p:presentation>')
    pres_rels = ''.join(
        f'<Relationship Id="rId{i + 1}" Type="{_RT}/slide" Target="slides/slide{i + 1}.xml"/>'
        for i in range(len(slides)))

    out = io.BytesIO()
    with zipfile.ZipFile(out, 'w', zipfile.ZIP_DEFLATED) as zf:
        zf.writestr('[Content_Types].xml', '<Types xmlns="http://schemas.openxmlformats.org/package/2006/'
                                           'content-types"/>')
        zf.writestr('_rels/.rels', f'<Relationships xmlns="{_REL_NS}"><Relationship Id="rId1" '
                                   f'Type="{_RT}/officeDocument" Target="ppt/presentation.xml"/></Relationships>')
        zf.writestr('ppt/presentation.xml', presentation)
        zf.writestr('ppt/_rels/presentation.xml.rels', f'<Relationships xmlns="{_REL_NS}">{pres_rels}</Relationships>')
        for i, xml in enumerate(slides, start=1):
            zf.writestr(f'ppt/slides/slide{i}.xml', xml)
        for name, payload in (extra_parts or {}).items():
            zf.writestr(name, payload)
    return out.getvalue()


# ---------------------------------------------------------------------------
# python-pptx 生成的样本
# ---------------------------------------------------------------------------

def new_presentation():
    return Presentation()


def add_title_slide(prs, title, *body_lines):
    slide = prs.slides.add_slide(prs.slide_layouts[LAYOUT_TITLE_AND_CONTENT])
    slide.shapes.title.text = title
    if body_lines:
        body = slide.placeholders[1].text_frame
        body.text = body_lines[0]
        for line in body_lines[1:]:
            body.add_paragraph().text = line
    return slide


def add_textbox(slide, text, x, y, cx=Emu(2743200), cy=Emu(914400)):
    box = slide.shapes.add_textbox(Emu(x), Emu(y), cx, cy)
    box.text_frame.text = text
    return box


@pytest.fixture
def simple_deck() -> bytes:
    """三页：标题+正文、标题+正文（相同标题）、只有文本框。"""
    prs = new_presentation()
    add_title_slide(prs, 'Introduction', 'First point', 'Second point')
    add_title_slide(prs, 'Introduction', 'More detail')
    blank = prs.slides.add_slide(prs.slide_layouts[LAYOUT_BLANK])
    add_textbox(blank, 'Closing remarks', 914400, 914400)
    return save_bytes(prs)


@pytest.fixture
def rich_deck() -> bytes:
    """包含文本框、图片、表格和图表的单页演示文稿。"""
    prs = new_presentation()
    slide = prs.slides.add_slide(prs.slide_layouts[LAYOUT_BLANK])
    add_textbox(slide, 'Overview text', 457200, 228600)

    slide.shapes.add_picture(io.BytesIO(png_bytes()), Emu(457200), Emu(1371600), Emu(914400), Emu(685800))

    table = slide.shapes.add_table(2, 2, Emu(457200), Emu(2743200), Emu(3657600), Emu(914400)).table
    table.cell(0, 0).text = 'Name'
    table.cell(0, 1).text = 'Value'
    table.cell(1, 0).text = 'alpha'
    table.cell(1, 1).text = '1'

    chart_data = CategoryChartData()
    chart_data.categories = ['Q1', 'Q2']
    chart_data.add_series('Sales', (1.0, 2.0))
    slide.shapes.add_chart(XL_CHART_TYPE.COLUMN_CLUSTERED, Emu(4572000), Emu(1371600), Emu(3657600),
                           Emu(2743200), chart_data)
    return save_bytes(prs)


@pytest.fixture
def markdown_config() -> ConversionConfig:
    return ConversionConfig(disable_tqdm=True, markdown=MarkdownOptions())


@pytest.fixture
def write_deck(tmp_path):
    """把字节写入 tmp_path 下的 .pptx 文件并返回路径。"""

    def _write(data: bytes, name: str = 'deck.pptx') -> Path:
        path = tmp_path / name
        path.write_bytes(data)
        return path

    return _write


# ---------------------------------------------------------------------------
# 截图策略替身
# ---------------------------------------------------------------------------

class FakeRenderer(SlideRenderer):
    """不启动任何引擎，直接为每页写一张纯色图片。"""

    method = 'replica'

    def __init__(self, options=None, output_dir='slides', capabilities=None):
        super().__init__(options, output_dir)

    def render(self, scene, archive):
        self.output_dir.mkdir(parents=True, exist_ok=True)
        result = self.new_result()
        for slide in scene.slides:
            path = self.output_dir / slide_filename(slide.number, self.options.format)
            img = Image.new('RGB', (16, 9), 'white')
            path.write_bytes(encode_image(img, self.options.format, self.options.quality))
            result.slide_images.append(describe_saved(path, slide.number, self.options.format))
        return result


class FakeOfficeRenderer(FakeRenderer):
    method = 'external'


class BrokenRenderer(FakeRenderer):
    def open(self):
        raise StrategyUnavailableError('replica', 'browser crashed', 'reinstall chromium')
