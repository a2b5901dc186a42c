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
"""关系表与主题配色的加载。

load_context 同步读完所有 ``_rels/*.rels`` 与 ``ppt/theme/*.xml`` 才返回，
页面解析只能拿到已经就绪的只读上下文。
"""

from __future__ import annotations

import logging
import posixpath
import re
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple

from pptx.opc.constants import RELATIONSHIP_TYPE as RT
from pydantic import BaseModel, ConfigDict

from deck2md.archive import Archive
from deck2md.errors import ParseError
from deck2md.xmltree import XmlNode, parse_part

logger = logging.getLogger(__name__)

_RELS_RE = re.compile(r'^(?P<dir>(?:.*/)?)_rels/(?P<name>[^/]*)\.rels$')
_THEME_RE = re.compile(r'^ppt/theme/[^/]+\.xml$')

# 幻灯片默认 clrMap：tx/bg 指向主题中的 dk/lt
_SCHEME_ALIASES = {
    'tx1': 'dk1',
    'bg1': 'lt1',
    'tx2': 'dk2',
    'bg2': 'lt2',
}


class Relationship(BaseModel):
    model_config = ConfigDict(frozen=True)

    rel_id: str
    type: str
    target: str
    """关系文件中的原始 Target"""

    target_path: str
    """解析后的归档内路径；外部目标保持原样"""

    external: bool = False


class Theme(BaseModel):
    model_config = ConfigDict(frozen=True)

    part_path: str
    name: str = ''
    colors: Dict[str, str] = {}
    """方案颜色名 → #RRGGBB"""

    major_font: Optional[str] = None
    minor_font: Optional[str] = None

    def color(self, scheme_name: str) -> Optional[str]:
        key = _SCHEME_ALIASES.get(scheme_name, scheme_name)
        return self.colors.get(key)

    def font(self, typeface: str) -> Optional[str]:
        """解析 ``+mj-lt`` / ``+mn-lt`` 这类主题字体引用。"""
        if typeface.startswith('+mj'):
            return self.major_font
        if typeface.startswith('+mn'):
            return self.minor_font
        return typeface


def source_part_for(rels_path: str) -> Optional[str]:
    """``ppt/slides/_rels/slide1.xml.rels`` → ``ppt/slides/slide1.xml``；包级关系返回空串。"""
    m = _RELS_RE.match(rels_path)
    if not m:
        return None
    return f"{m.group('dir')}{m.group('name')}"


def rels_path_for(part_path: str) -> str:
    directory, name = posixpath.split(part_path)
    return posixpath.join(directory, '_rels', f'{name}.rels')


def resolve_target(source_part: str, target: str) -> str:
    if target.startswith('/'):
        return posixpath.normpath(target).lstrip('/')
    base = posixpath.dirname(source_part)
    return posixpath.normpath(posixpath.join(base, target))


class RelationshipTable:
    """按源部件路径索引的关系表，加载后只读。"""

    def __init__(self, tables: Mapping[str, Mapping[str, Relationship]]):
        self._tables = MappingProxyType({k: MappingProxyType(dict(v)) for k, v in tables.items()})

    def find(self, source_part: str, rel_id: str) -> Optional[Relationship]:
        table = self._tables.get(source_part)
        if table is None:
            return None
        return table.get(rel_id)

    def for_part(self, source_part: str) -> Mapping[str, Relationship]:
        return self._tables.get(source_part, MappingProxyType({}))

    def first_of_type(self, source_part: str, rel_type: str) -> Optional[Relationship]:
        for rel in self.for_part(source_part).values():
            if rel.type == rel_type:
                return rel
        return None

    def sources(self) -> List[str]:
        return list(self._tables)

    def __len__(self):
        return sum(len(t) for t in self._tables.values())


class ExtractionContext:
    """页面解析共享的只读上下文。"""

    def __init__(self, archive: Archive, relationships: RelationshipTable, themes: Mapping[str, Theme],
                 skipped_parts: Tuple[str, ...] = ()):
        self.archive = archive
        self.relationships = relationships
        self.themes = MappingProxyType(dict(themes))
        self.skipped_parts = skipped_parts

    def theme_for(self, part_path: str) -> Optional[Theme]:
        """沿 slide → layout → master → theme 关系查找主题，找不到时退回第一个主题。"""
        current = part_path
        for rel_type in (RT.SLIDE_LAYOUT, RT.SLIDE_MASTER):
            rel = self.relationships.first_of_type(current, rel_type)
            if rel is None:
                break
            current = rel.target_path
        rel = self.relationships.first_of_type(current, RT.THEME)
        if rel is not None and rel.target_path in self.themes:
            return self.themes[rel.target_path]
        if self.themes:
            return self.themes[sorted(self.themes)[0]]
        return None


def _parse_relationships(source_part: str, root: XmlNode) -> Dict[str, Relationship]:
    table = {}
    for node in root.children:
        if node.local_name != 'Relationship':
            continue
        rel_id = node.get('Id')
        target = node.get('Target', '')
        if not rel_id:
            continue
        external = node.get('TargetMode') == 'External'
        table[rel_id] = Relationship(
            rel_id=rel_id,
            type=node.get('Type', ''),
            target=target,
            target_path=target if external else resolve_target(source_part, target),
            external=external,
        )
    return table


def _color_value(node: XmlNode) -> Optional[str]:
    for child in node.children:
        if child.tag == 'a:srgbClr' and child.get('val'):
            return f"#{child.get('val').upper()}"
        if child.tag == 'a:sysClr':
            last = child.get('lastClr')
            if last:
                return f'#{last.upper()}'
    return None


def parse_theme(part_path: str, root: XmlNode) -> Theme:
    colors = {}
    scheme = root.find_path('a:themeElements/a:clrScheme')
    if scheme is not None:
        for slot in scheme.children:
            value = _color_value(slot)
            if value:
                colors[slot.local_name] = value
    fonts = root.find_path('a:themeElements/a:fontScheme')
    major = fonts.find_path('a:majorFont/a:latin') if fonts is not None else None
    minor = fonts.find_path('a:minorFont/a:latin') if fonts is not None else None
    return Theme(
        part_path=part_path,
        name=root.get('name', ''),
        colors=colors,
        major_font=major.get('typeface') if major is not None else None,
        minor_font=minor.get('typeface') if minor is not None else None,
    )


def load_context(archive: Archive) -> ExtractionContext:
    """读取归档内全部关系部件与主题部件。

    单个部件无法解析时记录警告并跳过（该部件的关系表为空），不会中断加载。
    """
    tables: Dict[str, Dict[str, Relationship]] = {}
    themes: Dict[str, Theme] = {}
    skipped = []

    for name in sorted(archive.names()):
        source = source_part_for(name)
        if source is not None:
            try:
                root = parse_part(archive.lookup(name), name)
            except ParseError as e:
                logger.warning(f'Relationship part {name} skipped: {e}')
                skipped.append(name)
                continue
            tables[source] = _parse_relationships(source, root)
        elif _THEME_RE.match(name):
            try:
                root = parse_part(archive.lookup(name), name)
            except ParseError as e:
                logger.warning(f'Theme part {name} skipped: {e}')
                skipped.append(name)
                continue
            themes[name] = parse_theme(name, root)

    relationships = RelationshipTable(tables)
    logger.debug(f'loaded {len(relationships)} relationships from {len(tables)} parts, {len(themes)} themes')
    return ExtractionContext(archive, relationships, themes, tuple(skipped))
