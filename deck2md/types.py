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

from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from typing_extensions import Annotated

# 16:9 标准页面尺寸（EMU）
DEFAULT_SLIDE_WIDTH = 12192000
DEFAULT_SLIDE_HEIGHT = 6858000

DividerStyle = Literal['simple', 'thick', 'dashed', 'dotted']
RasterFormat = Literal['png', 'jpeg']
BulletType = Literal['none', 'bullet', 'numbered']

# ---------------------------------------------------------------------------
# 配置
# ---------------------------------------------------------------------------


class LayoutOptions(BaseModel):
    """Markdown 布局近似的调优参数（表格合并填充、多栏密度阈值等）。"""

    substantial_threshold: int = 10
    """文本块 strip 后长度超过该值才算“实质性”栏"""

    max_columns: int = 4
    """实质性栏超过该数量时退化为段落拼接"""

    column_char_limit: int = 200
    """多栏表格中每栏内容的最大字符数"""

    min_cell_width: int = 10
    """带对齐的单元格最小宽度（空格填充）"""

    colspan_padding: int = 3
    """每多跨一列追加的空格数"""

    line_break_marker: str = '<br>'
    """表格单元格内的换行标记"""

    truncation_marker: str = '...'
    """截断后追加的标记"""

    preserve_alignment: bool = True
    """在分隔行和单元格填充中保留对齐"""

    preserve_colors: bool = False
    """为有底色的单元格追加 <!-- bg:#hex --> 注释"""


class MarkdownOptions(BaseModel):
    """结构化 Markdown 合成的配置。"""

    enable_slides: bool = False
    """幻灯片之间插入分隔线"""

    divider_style: DividerStyle = 'simple'
    """分隔线样式"""

    disable_slide_number: bool = False
    """不在每页内容前添加编号注释"""

    keep_similar_titles: bool = False
    """保留相似标题（添加 (cont.) 后缀）"""

    try_multi_column: bool = False
    """尝试把同一行并排的文本块渲染为多栏"""

    size_headings: bool = False
    """按字号把正文段落映射为标题"""

    same_row_tolerance: int = 200
    """y 坐标差小于该值（EMU）的元素视为同一行"""

    compress_blank_lines: bool = True
    """压缩连续空行"""

    disable_escaping: bool = False
    """不转义特殊字符"""

    layout: LayoutOptions = Field(default_factory=LayoutOptions)


class RenderOptions(BaseModel):
    """逐页截图的配置。"""

    width: int = 1920
    height: int = 1080
    quality: int = Field(default=90, ge=1, le=100)
    """JPEG 质量（1-100）"""

    format: RasterFormat = 'png'
    device_scale_factor: float = 2.0
    timeout: int = 30000
    """单页截图超时（毫秒）"""

    prefer_external_tool: bool = False
    """优先使用外部办公套件渲染"""

    allow_fallback: bool = True
    """某一策略初始化失败时改用另一种策略"""

    headless: bool = True
    soffice_path: Optional[Path] = None
    """显式指定 soffice 可执行文件"""


class ConversionConfig(BaseModel):
    """一次转换请求的配置。"""

    output_mode: Literal['markdown', 'images'] = 'markdown'
    """markdown=结构化合成；images=逐页截图"""

    output_path: Optional[Path] = None
    """Markdown 输出文件；为空时只返回字符串"""

    output_dir: Path = Path('slides')
    """截图输出目录"""

    image_dir: Optional[Path] = None
    """嵌入图片的存放目录；为空且未提供图片提取器时只引用归档路径"""

    max_workers: int = Field(default=1, ge=1)
    """逐页解析的并行度上限"""

    disable_tqdm: bool = False

    markdown: MarkdownOptions = Field(default_factory=MarkdownOptions)
    render: RenderOptions = Field(default_factory=RenderOptions)


# ---------------------------------------------------------------------------
# 场景图
# ---------------------------------------------------------------------------


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class ElementType(str, Enum):
    Text = 'text'
    Shape = 'shape'
    Image = 'image'
    Chart = 'chart'
    Table = 'table'
    Group = 'group'


class Alignment(str, Enum):
    Left = 'left'
    Center = 'center'
    Right = 'right'
    Justify = 'justify'


class Position(_Frozen):
    x: int = 0
    y: int = 0
    z: int = 0


class Size(_Frozen):
    width: int = 0
    height: int = 0


class SlideDimensions(_Frozen):
    width: int = DEFAULT_SLIDE_WIDTH
    height: int = DEFAULT_SLIDE_HEIGHT
    unit: Literal['EMU', 'points', 'pixels'] = 'EMU'


class BackgroundInfo(_Frozen):
    type: Literal['solid', 'gradient', 'image', 'pattern'] = 'solid'
    color: str = '#FFFFFF'
    approximated: bool = False
    """颜色不是从源文档精确解析出来的（渐变/图片/图案背景退化为白色）"""


class FontInfo(_Frozen):
    family: str = 'Arial'
    size: float = 18.0
    color: Optional[str] = None
    bold: bool = False
    italic: bool = False
    underline: bool = False


class ElementStyle(_Frozen):
    fill: Optional[str] = None
    stroke: Optional[str] = None
    stroke_width: Optional[int] = None
    opacity: Optional[float] = None
    rotation: Optional[float] = None
    font: Optional[FontInfo] = None
    approximated: bool = False


class TextRun(_Frozen):
    text: str
    font: Optional[FontInfo] = None
    hyperlink: Optional[str] = None
    """外部超链接地址"""


class TextParagraph(_Frozen):
    text: str
    runs: List[TextRun] = []
    alignment: Alignment = Alignment.Left
    level: int = 0
    bullet: BulletType = 'none'


class TableCell(_Frozen):
    text: str = ''
    colspan: int = 1
    rowspan: int = 1
    merged: bool = False
    """被左侧/上方单元格合并的延续格"""

    h_merged: bool = False
    alignment: Optional[Alignment] = None
    bold: bool = False
    italic: bool = False
    background: Optional[str] = None
    style: Optional[ElementStyle] = None


class TableRow(_Frozen):
    cells: List[TableCell] = []
    height: Optional[int] = None


class BaseElement(_Frozen):
    id: str
    name: str = ''
    position: Position = Field(default_factory=Position)
    size: Size = Field(default_factory=Size)
    style: Optional[ElementStyle] = None


class TextElement(BaseElement):
    type: Literal[ElementType.Text] = ElementType.Text
    paragraphs: List[TextParagraph] = []
    placeholder: Optional[str] = None
    """占位符类型（title/ctrTitle/body/ftr/dt/sldNum…）"""

    @property
    def text(self) -> str:
        return '\n'.join(p.text for p in self.paragraphs if p.text)


class ShapeElement(BaseElement):
    type: Literal[ElementType.Shape] = ElementType.Shape
    shape_type: str = 'unknown'
    geometry: Optional[Dict[str, Any]] = None


class ImageElement(BaseElement):
    type: Literal[ElementType.Image] = ElementType.Image
    image_path: str = ''
    """解析后的归档内路径；未解析时为空串"""

    resolved: bool = False
    rel_id: Optional[str] = None
    original_size: Size = Field(default_factory=Size)
    aspect_ratio: float = 0.0
    alt_text: str = ''


class ChartElement(BaseElement):
    type: Literal[ElementType.Chart] = ElementType.Chart
    chart_type: str = 'unknown'
    chart_path: str = ''
    resolved: bool = False
    rel_id: Optional[str] = None
    graphic_uri: str = ''


class TableElement(BaseElement):
    type: Literal[ElementType.Table] = ElementType.Table
    rows: List[TableRow] = []
    column_widths: List[int] = []


class GroupElement(BaseElement):
    type: Literal[ElementType.Group] = ElementType.Group
    children: List[VisualElement] = []
    """子元素坐标相对于组原点"""


VisualElement = Annotated[
    Union[TextElement, ShapeElement, ImageElement, ChartElement, TableElement, GroupElement],
    Field(discriminator='type'),
]

GroupElement.model_rebuild()


class ExtractionIssue(_Frozen):
    slide_number: int
    element_id: Optional[str] = None
    stage: Literal['slide', 'element'] = 'slide'
    message: str


class Slide(_Frozen):
    id: str
    number: int
    title: Optional[str] = None
    background: Optional[BackgroundInfo] = None
    dimensions: SlideDimensions = Field(default_factory=SlideDimensions)
    elements: List[VisualElement] = []
    part_path: Optional[str] = None
    placeholder: bool = False
    """解析失败后的占位页"""


class Scene(_Frozen):
    slides: List[Slide] = []
    issues: List[ExtractionIssue] = []

    @property
    def slide_count(self) -> int:
        return len(self.slides)


# ---------------------------------------------------------------------------
# 协作方数据与输出
# ---------------------------------------------------------------------------


class ChartSeries(BaseModel):
    name: str = ''
    values: List[Optional[float]] = []


class ChartData(BaseModel):
    chart_type: str = 'unknown'
    title: Optional[str] = None
    categories: List[str] = []
    series: List[ChartSeries] = []


class SlideImage(BaseModel):
    slide_number: int
    original_id: str
    saved_path: Path
    byte_size: int
    format: str
    width: int
    height: int


class SlideFailure(BaseModel):
    slide_number: int
    reason: str
    timed_out: bool = False


class RasterResult(BaseModel):
    slide_images: List[SlideImage] = []
    failures: List[SlideFailure] = []
    method: Literal['replica', 'external']
    width: int
    height: int
    quality: int
    format: str

    @property
    def slide_count(self) -> int:
        return len(self.slide_images)


class ImageDescriptor(BaseModel):
    original_id: str
    saved_location: str
    byte_size: int
    format: str


class ConversionResult(BaseModel):
    markdown: str
    images: List[ImageDescriptor] = []
    slide_count: int
    elapsed_ms: float
    metadata: Dict[str, Any] = {}


class ListItem(BaseModel):
    text: str
    level: int = 0
    bold: bool = False
    italic: bool = False
    children: List[ListItem] = []


class ListData(BaseModel):
    ordered: bool = False
    items: List[ListItem] = []
