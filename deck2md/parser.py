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

from __future__ import annotations

import io
import logging
import warnings
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Iterable, List, Optional, Tuple

from PIL import Image
from pptx.opc.constants import RELATIONSHIP_TYPE as RT
from pydantic import BaseModel, ConfigDict
from tqdm import tqdm

from deck2md.archive import Archive, open_archive
from deck2md.errors import NotFoundError, ParseError, PartialExtractionWarning
from deck2md.rels import ExtractionContext, Theme, load_context
from deck2md.types import (
    Alignment,
    BackgroundInfo,
    ChartElement,
    ConversionConfig,
    ElementStyle,
    ExtractionIssue,
    FontInfo,
    GroupElement,
    ImageElement,
    Position,
    Scene,
    ShapeElement,
    Size,
    Slide,
    SlideDimensions,
    TableCell,
    TableElement,
    TableRow,
    TextElement,
    TextParagraph,
    TextRun,
)
from deck2md.xmltree import XmlNode, parse_part

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, str], None]

MAX_GROUP_DEPTH = 32
DEFAULT_PRESENTATION_PART = 'ppt/presentation.xml'

_TITLE_PLACEHOLDERS = ('title', 'ctrTitle')
_BODY_PLACEHOLDERS = ('body', 'obj')

_ALIGNMENTS = {
    'l': Alignment.Left,
    'ctr': Alignment.Center,
    'r': Alignment.Right,
    'just': Alignment.Justify,
    'dist': Alignment.Justify,
}

_SYSTEM_COLORS = {
    'windowText': '#000000',
    'window': '#FFFFFF',
    'btnFace': '#F0F0F0',
    'btnText': '#000000',
    'highlight': '#0078D7',
    'highlightText': '#FFFFFF',
    'grayText': '#6D6D6D',
}

_PRESET_COLORS = {
    'black': '#000000',
    'white': '#FFFFFF',
    'red': '#FF0000',
    'green': '#008000',
    'lime': '#00FF00',
    'blue': '#0000FF',
    'yellow': '#FFFF00',
    'cyan': '#00FFFF',
    'magenta': '#FF00FF',
    'gray': '#808080',
    'grey': '#808080',
    'dkGray': '#A9A9A9',
    'ltGray': '#D3D3D3',
    'silver': '#C0C0C0',
    'orange': '#FFA500',
    'purple': '#800080',
    'navy': '#000080',
    'maroon': '#800000',
    'olive': '#808000',
    'teal': '#008080',
}

# alpha 只影响透明度，不改变颜色本身
_NON_COLOR_MODIFIERS = ('a:alpha',)


class SlideRef(BaseModel):
    model_config = ConfigDict(frozen=True)

    number: int
    slide_id: str
    rel_id: Optional[str] = None


class PresentationPart(BaseModel):
    """presentation.xml 中与页面遍历相关的部分。"""
    model_config = ConfigDict(frozen=True)

    part_path: str = DEFAULT_PRESENTATION_PART
    slide_refs: List[SlideRef] = []
    slide_size: Optional[SlideDimensions] = None


# ---------------------------------------------------------------------------
# 基础解析工具
# ---------------------------------------------------------------------------


def _int_attr(node: Optional[XmlNode], name: str, default: int = 0) -> int:
    if node is None:
        return default
    value = node.get(name)
    if value is None:
        return default
    return int(value)


def _is_true(value: Optional[str]) -> bool:
    return value in ('1', 'true')


def resolve_color(container: Optional[XmlNode], theme: Optional[Theme]) -> Tuple[Optional[str], bool]:
    """解析填充容器（如 a:solidFill）中的颜色。

    返回 (``#RRGGBB`` 或 None, 是否为近似值)。带亮度/饱和度等变换的颜色按基色返回并标记近似。
    """
    if container is None:
        return None, False
    for child in container.children:
        modified = any(m.tag not in _NON_COLOR_MODIFIERS for m in child.children)
        color = None
        match child.tag:
            case 'a:srgbClr':
                val = child.get('val')
                color = f'#{val.upper()}' if val else None
            case 'a:sysClr':
                last = child.get('lastClr')
                color = f'#{last.upper()}' if last else _SYSTEM_COLORS.get(child.get('val', ''))
            case 'a:schemeClr':
                color = theme.color(child.get('val', '')) if theme is not None else None
            case 'a:prstClr':
                color = _PRESET_COLORS.get(child.get('val', ''))
            case 'a:scrgbClr':
                channels = [_int_attr(child, c) for c in ('r', 'g', 'b')]
                color = '#' + ''.join(f'{round(min(max(v, 0), 100000) / 100000 * 255):02X}' for v in channels)
            case _:
                continue
        if color is None:
            # 识别出颜色节点但无法解析出具体值
            return None, True
        return color, modified
    return None, False


def _alpha(container: Optional[XmlNode]) -> Optional[float]:
    if container is None:
        return None
    for child in container.children:
        alpha = child.find('a:alpha')
        if alpha is not None:
            return _int_attr(alpha, 'val', 100000) / 100000
    return None


def _read_xfrm(xfrm: Optional[XmlNode]) -> Tuple[int, int, int, int]:
    if xfrm is None:
        return 0, 0, 0, 0
    off = xfrm.find('a:off')
    ext = xfrm.find('a:ext')
    return _int_attr(off, 'x'), _int_attr(off, 'y'), _int_attr(ext, 'cx'), _int_attr(ext, 'cy')


def _scale(value: int, num: int, den: int) -> int:
    if not den or num == den:
        return value
    return round(value * num / den)


class _GroupTransform:
    """组内子坐标空间 → 相对组原点的坐标。

    size 是组在外层坐标系中的实际尺寸（嵌套组已经过外层缩放），不能直接读 a:ext。
    """

    def __init__(self, xfrm: Optional[XmlNode], size: Size):
        self.cx, self.cy = size.width, size.height
        ch_off = xfrm.find('a:chOff') if xfrm is not None else None
        ch_ext = xfrm.find('a:chExt') if xfrm is not None else None
        self.ch_x = _int_attr(ch_off, 'x')
        self.ch_y = _int_attr(ch_off, 'y')
        self.ch_cx = _int_attr(ch_ext, 'cx')
        self.ch_cy = _int_attr(ch_ext, 'cy')

    def apply(self, x, y, cx, cy):
        return (
            _scale(x - self.ch_x, self.cx, self.ch_cx),
            _scale(y - self.ch_y, self.cy, self.ch_cy),
            _scale(cx, self.cx, self.ch_cx),
            _scale(cy, self.cy, self.ch_cy),
        )


# ---------------------------------------------------------------------------
# presentation.xml
# ---------------------------------------------------------------------------


def _presentation_part_path(context: ExtractionContext) -> str:
    rel = context.relationships.first_of_type('', RT.OFFICE_DOCUMENT)
    if rel is not None and rel.target_path in context.archive:
        return rel.target_path
    return DEFAULT_PRESENTATION_PART


def read_presentation(context: ExtractionContext) -> PresentationPart:
    """读取页面引用列表和页面尺寸。

    异常:
        NotFoundError: 缺少 presentation.xml。
        MalformedInputError: presentation.xml 无法解析。
    """
    part_path = _presentation_part_path(context)
    root = parse_part(context.archive.lookup(part_path), part_path)

    refs = []
    sld_id_lst = root.find('p:sldIdLst')
    if sld_id_lst is not None:
        for number, sld_id in enumerate(sld_id_lst.find_all('p:sldId'), start=1):
            refs.append(SlideRef(number=number, slide_id=sld_id.get('id', str(number)), rel_id=sld_id.get('r:id')))

    slide_size = None
    sld_sz = root.find('p:sldSz')
    if sld_sz is not None and sld_sz.get('cx') and sld_sz.get('cy'):
        try:
            slide_size = SlideDimensions(width=int(sld_sz.get('cx')), height=int(sld_sz.get('cy')))
        except ValueError:
            logger.warning(f'Invalid slide size in {part_path}, using 16:9 default.')
    return PresentationPart(part_path=part_path, slide_refs=refs, slide_size=slide_size)


def _slide_part_path(context: ExtractionContext, presentation: PresentationPart, ref: SlideRef) -> str:
    if ref.rel_id:
        rel = context.relationships.find(presentation.part_path, ref.rel_id)
        if rel is not None and not rel.external and rel.target_path in context.archive:
            return rel.target_path
    return f'ppt/slides/slide{ref.number}.xml'


# ---------------------------------------------------------------------------
# 单页解析
# ---------------------------------------------------------------------------


class _SlideBuilder:

    def __init__(self, context: ExtractionContext, number: int, slide_id: str, part_path: str,
                 dimensions: SlideDimensions):
        self.context = context
        self.number = number
        self.slide_id = slide_id
        self.part_path = part_path
        self.dimensions = dimensions
        self.theme = context.theme_for(part_path)
        self.issues: List[ExtractionIssue] = []
        self.title: Optional[str] = None
        self._ids = {}
        self._z = 0
        self._body_style = None
        self._body_style_loaded = False

    def build(self) -> Slide:
        root = parse_part(self.context.archive.lookup(self.part_path), self.part_path)
        c_sld = root.find('p:cSld')
        if c_sld is None:
            raise ParseError(self.part_path, 'missing p:cSld')
        sp_tree = c_sld.find('p:spTree')
        elements = self.convert_children(sp_tree.children, 0, None) if sp_tree is not None else []
        return Slide(
            id=self.slide_id,
            number=self.number,
            title=self.title,
            background=self.resolve_background(c_sld),
            dimensions=self.dimensions,
            elements=elements,
            part_path=self.part_path,
        )

    def record(self, element_id: Optional[str], message: str):
        issue = ExtractionIssue(slide_number=self.number, element_id=element_id, stage='element', message=message)
        self.issues.append(issue)
        logger.warning(f'Slide {self.number}: {message}')
        warnings.warn(PartialExtractionWarning(message, self.number, element_id), stacklevel=2)

    # ---- 背景 -------------------------------------------------------------

    def _inherited_parts(self) -> Iterable[str]:
        current = self.part_path
        for rel_type in (RT.SLIDE_LAYOUT, RT.SLIDE_MASTER):
            rel = self.context.relationships.first_of_type(current, rel_type)
            if rel is None or rel.target_path not in self.context.archive:
                return
            current = rel.target_path
            yield current

    def resolve_background(self, c_sld: XmlNode) -> Optional[BackgroundInfo]:
        bg = c_sld.find('p:bg')
        if bg is None:
            # 页面未定义背景时沿用版式/母版
            for part in self._inherited_parts():
                try:
                    root = parse_part(self.context.archive.lookup(part), part)
                except (ParseError, NotFoundError) as e:
                    logger.debug(f'background lookup skipped {part}: {e}')
                    continue
                bg = root.find_path('p:cSld/p:bg')
                if bg is not None:
                    break
        if bg is None:
            return None

        bg_pr = bg.find('p:bgPr')
        if bg_pr is not None:
            solid = bg_pr.find('a:solidFill')
            if solid is not None:
                color, approximated = resolve_color(solid, self.theme)
                return BackgroundInfo(type='solid', color=color or '#FFFFFF',
                                      approximated=approximated or color is None)
            for tag, kind in (('a:gradFill', 'gradient'), ('a:blipFill', 'image'), ('a:pattFill', 'pattern')):
                if bg_pr.find(tag) is not None:
                    return BackgroundInfo(type=kind, color='#FFFFFF', approximated=True)
            return BackgroundInfo(color='#FFFFFF', approximated=True)

        bg_ref = bg.find('p:bgRef')
        if bg_ref is not None:
            color, _ = resolve_color(bg_ref, self.theme)
            # 引用主题填充样式，样式本身不展开
            return BackgroundInfo(type='solid', color=color or '#FFFFFF', approximated=True)
        return BackgroundInfo(color='#FFFFFF', approximated=True)

    # ---- 元素遍历 ---------------------------------------------------------

    def _unwrap(self, nodes: Iterable[XmlNode]) -> Iterable[XmlNode]:
        for node in nodes:
            if node.tag != 'mc:AlternateContent':
                yield node
                continue
            choice = node.find('mc:Choice')
            fallback = node.find('mc:Fallback')
            chosen = list(choice.children) if choice is not None else []
            # OLE 公式的预览图通常在 Fallback 的 p:pic 里
            if fallback is not None and any(n.tag == 'p:pic' for n in fallback.children) and any(
                    n.tag == 'p:graphicFrame' and any(True for _ in n.iter('p:oleObj')) for n in chosen):
                chosen = list(fallback.children)
            if not chosen and fallback is not None:
                chosen = list(fallback.children)
            yield from self._unwrap(chosen)

    def convert_children(self, nodes: Iterable[XmlNode], depth: int, transform: Optional[_GroupTransform]) -> list:
        results = []
        for node in self._unwrap(nodes):
            if node.tag not in ('p:sp', 'p:pic', 'p:graphicFrame', 'p:grpSp', 'p:cxnSp'):
                if node.tag not in ('p:nvGrpSpPr', 'p:grpSpPr', 'p:extLst'):
                    logger.debug(f'Slide {self.number}: unsupported element {node.tag} skipped')
                continue
            try:
                element = self.convert(node, depth, transform)
            except Exception as e:
                self.record(_raw_id(node), f'failed to load shape {_raw_id(node) or node.tag}, skipped. error: {e}')
                continue
            if element is not None:
                results.append(element)
        return results

    def convert(self, node: XmlNode, depth: int, transform: Optional[_GroupTransform]):
        match node.tag:
            case 'p:sp':
                return self.process_sp(node, transform)
            case 'p:pic':
                return self.process_picture(node, transform)
            case 'p:graphicFrame':
                return self.process_graphic_frame(node, transform)
            case 'p:grpSp':
                return self.process_group(node, depth, transform)
            case 'p:cxnSp':
                return self.process_connector(node, transform)
        return None

    def _common(self, node: XmlNode, nv_tag: str, xfrm: Optional[XmlNode], transform: Optional[_GroupTransform]):
        c_nv_pr = node.find_path(f'{nv_tag}/p:cNvPr')
        raw_id = c_nv_pr.get('id', '') if c_nv_pr is not None else ''
        name = c_nv_pr.get('name', '') if c_nv_pr is not None else ''
        x, y, cx, cy = _read_xfrm(xfrm)
        if transform is not None:
            x, y, cx, cy = transform.apply(x, y, cx, cy)
        self._z += 1
        return dict(
            id=self._unique_id(f'{raw_id}_{name}'),
            name=name,
            position=Position(x=x, y=y, z=self._z),
            size=Size(width=cx, height=cy),
        )

    def _unique_id(self, base: str) -> str:
        count = self._ids.get(base, 0) + 1
        self._ids[base] = count
        return base if count == 1 else f'{base}_{count}'

    def _shape_style(self, sp_pr: Optional[XmlNode], font: Optional[FontInfo] = None) -> Optional[ElementStyle]:
        if sp_pr is None and font is None:
            return None
        fill = stroke = None
        stroke_width = opacity = rotation = None
        approximated = False
        if sp_pr is not None:
            solid = sp_pr.find('a:solidFill')
            if solid is not None:
                fill, approx = resolve_color(solid, self.theme)
                approximated |= approx
                opacity = _alpha(solid)
            elif sp_pr.find('a:gradFill') is not None:
                stops = sp_pr.find_path('a:gradFill/a:gsLst')
                first = stops.children[0] if stops is not None and stops.children else None
                fill, _ = resolve_color(first, self.theme)
                approximated = True
            ln = sp_pr.find('a:ln')
            if ln is not None:
                stroke, approx = resolve_color(ln.find('a:solidFill'), self.theme)
                approximated |= approx
                if ln.get('w'):
                    stroke_width = int(ln.get('w'))
            xfrm = sp_pr.find('a:xfrm')
            if xfrm is not None and xfrm.get('rot'):
                rotation = int(xfrm.get('rot')) / 60000
        return ElementStyle(fill=fill, stroke=stroke, stroke_width=stroke_width, opacity=opacity,
                            rotation=rotation, font=font, approximated=approximated)

    def _geometry(self, sp_pr: Optional[XmlNode]) -> Tuple[str, Optional[dict]]:
        if sp_pr is None:
            return 'unknown', None
        prst = sp_pr.find('a:prstGeom')
        if prst is not None:
            adjustments = {}
            av_lst = prst.find('a:avLst')
            if av_lst is not None:
                adjustments = {gd.get('name', ''): gd.get('fmla', '') for gd in av_lst.find_all('a:gd')}
            return prst.get('prst', 'unknown'), {'preset': prst.get('prst', 'unknown'), 'adjustments': adjustments}
        cust = sp_pr.find('a:custGeom')
        if cust is not None:
            paths = cust.find('a:pathLst')
            return 'custom', {'custom': True, 'paths': len(paths.children) if paths is not None else 0}
        return 'unknown', None

    # ---- 各类形状 ---------------------------------------------------------

    def process_sp(self, node: XmlNode, transform):
        sp_pr = node.find('p:spPr')
        common = self._common(node, 'p:nvSpPr', sp_pr.find('a:xfrm') if sp_pr is not None else None, transform)
        ph = node.find_path('p:nvSpPr/p:nvPr/p:ph')
        ph_type = (ph.get('type') or 'obj') if ph is not None else None

        tx_body = node.find('p:txBody')
        if tx_body is not None:
            paragraphs = self.process_text_body(tx_body, ph_type)
            font = next((r.font for p in paragraphs for r in p.runs if r.font is not None), None)
            element = TextElement(**common, style=self._shape_style(sp_pr, font), paragraphs=paragraphs,
                                  placeholder=ph_type)
            # 空的标题占位符不作为页面标题
            title = ' '.join(p.text.strip() for p in paragraphs if p.text.strip())
            if self.title is None and ph_type in _TITLE_PLACEHOLDERS and title:
                self.title = title
            return element

        shape_type, geometry = self._geometry(sp_pr)
        return ShapeElement(**common, style=self._shape_style(sp_pr), shape_type=shape_type, geometry=geometry)

    def process_connector(self, node: XmlNode, transform):
        sp_pr = node.find('p:spPr')
        common = self._common(node, 'p:nvCxnSpPr', sp_pr.find('a:xfrm') if sp_pr is not None else None, transform)
        shape_type, geometry = self._geometry(sp_pr)
        return ShapeElement(**common, style=self._shape_style(sp_pr), shape_type=shape_type, geometry=geometry)

    def process_picture(self, node: XmlNode, transform):
        sp_pr = node.find('p:spPr')
        common = self._common(node, 'p:nvPicPr', sp_pr.find('a:xfrm') if sp_pr is not None else None, transform)
        c_nv_pr = node.find_path('p:nvPicPr/p:cNvPr')
        alt_text = (c_nv_pr.get('descr') or '') if c_nv_pr is not None else ''

        blip = node.find_path('p:blipFill/a:blip')
        rel_id = None
        if blip is not None:
            rel_id = blip.get('r:embed') or blip.get('r:link')
        image_path, resolved = self._resolve_target(rel_id)
        if not resolved:
            logger.info(f'Image {common["id"]} in slide {self.number} has no resolvable media ({rel_id}).')

        original_size = Size()
        if resolved:
            original_size = _image_pixel_size(self.context.archive.lookup(image_path), image_path)
        size = common['size']
        aspect_source = size if size.height else original_size
        aspect_ratio = aspect_source.width / aspect_source.height if aspect_source.height else 0.0
        return ImageElement(**common, style=self._shape_style(sp_pr), image_path=image_path if resolved else '',
                            resolved=resolved, rel_id=rel_id, original_size=original_size,
                            aspect_ratio=aspect_ratio, alt_text=alt_text)

    def process_graphic_frame(self, node: XmlNode, transform):
        common = self._common(node, 'p:nvGraphicFramePr', node.find('p:xfrm'), transform)
        graphic_data = node.find_path('a:graphic/a:graphicData')
        uri = graphic_data.get('uri', '') if graphic_data is not None else ''

        if graphic_data is not None:
            tbl = graphic_data.find('a:tbl')
            if tbl is not None:
                rows, widths = self.process_table(tbl)
                return TableElement(**common, rows=rows, column_widths=widths)

        rel_id = None
        if graphic_data is not None:
            chart_ref = graphic_data.find('c:chart')
            if chart_ref is not None:
                rel_id = chart_ref.get('r:id')
        chart_path, resolved = self._resolve_target(rel_id)
        return ChartElement(**common, chart_type='unknown', chart_path=chart_path if resolved else '',
                            resolved=resolved, rel_id=rel_id, graphic_uri=uri)

    def process_group(self, node: XmlNode, depth: int, transform):
        grp_sp_pr = node.find('p:grpSpPr')
        xfrm = grp_sp_pr.find('a:xfrm') if grp_sp_pr is not None else None
        common = self._common(node, 'p:nvGrpSpPr', xfrm, transform)
        if depth >= MAX_GROUP_DEPTH:
            self.record(common['id'], f'group nesting deeper than {MAX_GROUP_DEPTH} levels, skipped')
            return None
        children = self.convert_children(node.children, depth + 1, _GroupTransform(xfrm, common['size']))
        return GroupElement(**common, style=self._shape_style(grp_sp_pr), children=children)

    def _resolve_target(self, rel_id: Optional[str]) -> Tuple[str, bool]:
        if not rel_id:
            return '', False
        rel = self.context.relationships.find(self.part_path, rel_id)
        if rel is None or rel.external or rel.target_path not in self.context.archive:
            return '', False
        return rel.target_path, True

    # ---- 文本 -------------------------------------------------------------

    def _master_body_style(self) -> Optional[XmlNode]:
        if not self._body_style_loaded:
            self._body_style_loaded = True
            parts = list(self._inherited_parts())
            if parts:
                master = parts[-1]
                try:
                    root = parse_part(self.context.archive.lookup(master), master)
                    self._body_style = root.find_path('p:txStyles/p:bodyStyle')
                except (ParseError, NotFoundError) as e:
                    logger.debug(f'body style lookup skipped {master}: {e}')
        return self._body_style

    def paragraph_bullet(self, p_pr: Optional[XmlNode], lst_style: Optional[XmlNode], level: int,
                         ph_type: Optional[str]) -> str:
        """检测段落的项目符号类型。

        检测层级：段落自身 → 文本体 lstStyle → 正文占位符继承母版 bodyStyle → level > 0。
        """
        explicit = _bullet_in_ppr(p_pr)
        if explicit is not None:
            return explicit
        body_result = _bullet_in_list_style(lst_style, level)
        if body_result is not None:
            return body_result
        if ph_type in _BODY_PLACEHOLDERS:
            master_result = _bullet_in_list_style(self._master_body_style(), level)
            if master_result is not None:
                return master_result
        if level > 0:
            return 'bullet'
        return 'none'

    def process_text_body(self, tx_body: XmlNode, ph_type: Optional[str]) -> List[TextParagraph]:
        lst_style = tx_body.find('a:lstStyle')
        paragraphs = []
        for p in tx_body.find_all('a:p'):
            p_pr = p.find('a:pPr')
            level = _int_attr(p_pr, 'lvl')
            runs = []
            for child in p.children:
                match child.tag:
                    case 'a:r' | 'a:fld':
                        t = child.find('a:t')
                        r_pr = child.find('a:rPr')
                        runs.append(TextRun(text=t.text if t is not None else '', font=self.font(r_pr),
                                            hyperlink=self.hyperlink(r_pr)))
                    case 'a:br':
                        runs.append(TextRun(text='\n', font=self.font(child.find('a:rPr'))))
            algn = p_pr.get('algn') if p_pr is not None else None
            paragraphs.append(TextParagraph(
                text=''.join(r.text for r in runs),
                runs=runs,
                alignment=_ALIGNMENTS.get(algn, Alignment.Left),
                level=level,
                bullet=self.paragraph_bullet(p_pr, lst_style, level, ph_type),
            ))
        return paragraphs

    def hyperlink(self, r_pr: Optional[XmlNode]) -> Optional[str]:
        # 只保留外部链接，页内跳转（ppaction://）没有可用地址
        click = r_pr.find('a:hlinkClick') if r_pr is not None else None
        rel_id = click.get('r:id') if click is not None else None
        if not rel_id:
            return None
        rel = self.context.relationships.find(self.part_path, rel_id)
        if rel is None or not rel.external:
            return None
        return rel.target

    def font(self, r_pr: Optional[XmlNode]) -> FontInfo:
        if r_pr is None:
            return FontInfo()
        family = 'Arial'
        latin = r_pr.find('a:latin')
        if latin is not None and latin.get('typeface'):
            family = latin.get('typeface')
            if family.startswith('+') and self.theme is not None:
                family = self.theme.font(family) or 'Arial'
        u = r_pr.get('u')
        color, _ = resolve_color(r_pr.find('a:solidFill'), self.theme)
        return FontInfo(
            family=family,
            size=_int_attr(r_pr, 'sz', 1800) / 100,
            color=color,
            bold=_is_true(r_pr.get('b')),
            italic=_is_true(r_pr.get('i')),
            underline=u is not None and u != 'none',
        )

    # ---- 表格 -------------------------------------------------------------

    def process_table(self, tbl: XmlNode) -> Tuple[List[TableRow], List[int]]:
        widths = [_int_attr(col, 'w') for col in tbl.find_path('a:tblGrid').find_all('a:gridCol')] \
            if tbl.find('a:tblGrid') is not None else []
        rows = []
        for tr in tbl.find_all('a:tr'):
            cells = [self.process_cell(tc) for tc in tr.find_all('a:tc')]
            rows.append(TableRow(cells=cells, height=_int_attr(tr, 'h') or None))
        return rows, widths

    def process_cell(self, tc: XmlNode) -> TableCell:
        tx_body = tc.find('a:txBody')
        paragraphs = self.process_text_body(tx_body, None) if tx_body is not None else []
        runs = [r for p in paragraphs for r in p.runs if r.text.strip()]
        alignment = None
        for p in (tx_body.find_all('a:p') if tx_body is not None else []):
            p_pr = p.find('a:pPr')
            if p_pr is not None and p_pr.get('algn') in _ALIGNMENTS:
                alignment = _ALIGNMENTS[p_pr.get('algn')]
                break
        h_merged = _is_true(tc.get('hMerge'))
        v_merged = _is_true(tc.get('vMerge'))
        tc_pr = tc.find('a:tcPr')
        background = None
        if tc_pr is not None:
            background, _ = resolve_color(tc_pr.find('a:solidFill'), self.theme)
        return TableCell(
            text='\n'.join(p.text for p in paragraphs).strip('\n'),
            colspan=_int_attr(tc, 'gridSpan', 1),
            rowspan=_int_attr(tc, 'rowSpan', 1),
            merged=h_merged or v_merged,
            h_merged=h_merged,
            alignment=alignment,
            bold=bool(runs) and all(r.font is not None and r.font.bold for r in runs),
            italic=bool(runs) and all(r.font is not None and r.font.italic for r in runs),
            background=background,
        )


def _raw_id(node: XmlNode) -> Optional[str]:
    for nv in node.children:
        c_nv_pr = nv.find('p:cNvPr')
        if c_nv_pr is not None:
            return f"{c_nv_pr.get('id', '')}_{c_nv_pr.get('name', '')}"
    return None


def _bullet_in_ppr(p_pr: Optional[XmlNode]) -> Optional[str]:
    """返回 'bullet'、'numbered'、'none' 或 None（未显式设置）。"""
    if p_pr is None:
        return None
    if p_pr.find('a:buNone') is not None:
        return 'none'
    if p_pr.find('a:buChar') is not None:
        return 'bullet'
    if p_pr.find('a:buAutoNum') is not None:
        return 'numbered'
    return None


def _bullet_in_list_style(lst_style: Optional[XmlNode], level: int) -> Optional[str]:
    if lst_style is None:
        return None
    return _bullet_in_ppr(lst_style.find(f'a:lvl{level + 1}pPr'))


def _image_pixel_size(data: bytes, path: str) -> Size:
    try:
        with Image.open(io.BytesIO(data)) as img:
            width, height = img.size
    except (OSError, ValueError, Image.DecompressionBombError) as e:
        logger.debug(f'cannot read image size of {path}: {e}')
        return Size()
    return Size(width=width, height=height)


def placeholder_slide(number: int, slide_id: Optional[str] = None, part_path: Optional[str] = None) -> Slide:
    return Slide(
        id=slide_id or str(number),
        number=number,
        title=f'Slide {number}',
        dimensions=SlideDimensions(),
        elements=[],
        part_path=part_path,
        placeholder=True,
    )


def extract_slide(context: ExtractionContext, presentation: PresentationPart,
                  ref: SlideRef) -> Tuple[Slide, List[ExtractionIssue]]:
    """解析单页；任何失败都退化为占位页，不影响其他页面。"""
    part_path = _slide_part_path(context, presentation, ref)
    dimensions = presentation.slide_size or SlideDimensions()
    builder = _SlideBuilder(context, ref.number, ref.slide_id, part_path, dimensions)
    try:
        slide = builder.build()
    except Exception as e:
        message = f'slide {ref.number} ({part_path}) could not be parsed: {e}'
        logger.warning(message)
        warnings.warn(PartialExtractionWarning(message, ref.number), stacklevel=2)
        issue = ExtractionIssue(slide_number=ref.number, stage='slide', message=message)
        return placeholder_slide(ref.number, ref.slide_id, part_path), builder.issues + [issue]
    return slide, builder.issues


def build_scene(context: ExtractionContext, config: Optional[ConversionConfig] = None,
                progress_callback: Optional[ProgressCallback] = None) -> Scene:
    """从已加载的上下文构建 Scene。页面顺序始终与编号一致。"""
    config = config or ConversionConfig()
    presentation = read_presentation(context)
    refs = presentation.slide_refs
    total = len(refs)
    logger.info(f'extracting {total} slides')

    def _extract(ref):
        return extract_slide(context, presentation, ref)

    slides = []
    issues = []
    with ThreadPoolExecutor(max_workers=config.max_workers) as pool:
        results = pool.map(_extract, refs) if config.max_workers > 1 else map(_extract, refs)
        iterator = results if config.disable_tqdm else tqdm(results, total=total, desc='Extracting slides')
        for idx, (slide, slide_issues) in enumerate(iterator):
            if progress_callback:
                progress_callback(idx + 1, total, f'Slide {idx + 1}')
            slides.append(slide)
            issues.extend(slide_issues)

    slides.sort(key=lambda s: s.number)
    return Scene(slides=slides, issues=issues)


def parse_visual_elements(source, config: Optional[ConversionConfig] = None,
                          progress_callback: Optional[ProgressCallback] = None) -> Scene:
    """将演示文稿解析为 Scene。

    参数:
        source: 已打开的 Archive，或 open_archive 接受的任意输入（字节、路径、二进制流）。
        config: 转换配置（使用其中的 max_workers、disable_tqdm）。
        progress_callback: 可选的进度更新回调，签名: (current, total, slide_name)。

    返回:
        N 个页面引用对应 N 个 Slide，编号 1..N；解析失败的页面为占位页。

    异常:
        NotFoundError: 缺少 presentation.xml。
        MalformedInputError: 容器损坏或 presentation.xml 无法解析。
    """
    if isinstance(source, Archive):
        return build_scene(load_context(source), config, progress_callback)
    with open_archive(source) as archive:
        return build_scene(load_context(archive), config, progress_callback)
