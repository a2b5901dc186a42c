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
"""把单个 XML 部件规范化为只读的有序属性树。

标签和属性名保留文档中实际使用的前缀（``p:sp``、``r:embed``），
命名空间 URI 不再出现在树里。注释与处理指令被丢弃。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Iterator, Mapping, Optional, Tuple

from lxml import etree

from deck2md.errors import ParseError

logger = logging.getLogger(__name__)

_XML_NS = 'http://www.w3.org/XML/1998/namespace'

# 不解析实体、不访问网络
_PARSER = etree.XMLParser(
    resolve_entities=False,
    no_network=True,
    remove_comments=True,
    remove_pis=True,
    recover=False,
)


@dataclass(frozen=True, eq=False)
class XmlNode:
    tag: str
    attrs: Mapping[str, str] = field(default_factory=dict)
    text: str = ''
    tail: str = ''
    children: Tuple['XmlNode', ...] = ()

    @property
    def local_name(self) -> str:
        return self.tag.rpartition(':')[2]

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.attrs.get(name, default)

    def find(self, tag: str) -> Optional['XmlNode']:
        for child in self.children:
            if child.tag == tag:
                return child
        return None

    def find_all(self, tag: str) -> list['XmlNode']:
        return [child for child in self.children if child.tag == tag]

    def find_path(self, path: str) -> Optional['XmlNode']:
        """按 ``a/b/c`` 逐级查找第一个匹配的直接子节点。"""
        node = self
        for step in path.split('/'):
            node = node.find(step)
            if node is None:
                return None
        return node

    def iter(self, tag: Optional[str] = None) -> Iterator['XmlNode']:
        """深度优先遍历（包含自身），文档顺序。"""
        stack = [self]
        while stack:
            node = stack.pop()
            if tag is None or node.tag == tag:
                yield node
            stack.extend(reversed(node.children))

    def text_content(self) -> str:
        parts = []
        self._collect_text(parts)
        return ''.join(parts)

    def _collect_text(self, parts):
        parts.append(self.text)
        for child in self.children:
            child._collect_text(parts)
            parts.append(child.tail)

    def __repr__(self):
        return f'<XmlNode {self.tag} attrs={len(self.attrs)} children={len(self.children)}>'


def _qualify(name: str, prefixes: Mapping[Optional[str], str]) -> str:
    if not name.startswith('{'):
        return name
    uri, _, local = name[1:].partition('}')
    if uri == _XML_NS:
        return f'xml:{local}'
    prefix = prefixes.get(uri)
    return f'{prefix}:{local}' if prefix else local


def _convert(el) -> XmlNode:
    # nsmap 包含继承自祖先的声明；若同一 URI 绑定多个前缀，以最先出现者为准
    prefixes = {}
    for prefix, uri in el.nsmap.items():
        if uri not in prefixes or prefixes[uri] is None:
            prefixes[uri] = prefix

    qname = etree.QName(el)
    tag = f'{el.prefix}:{qname.localname}' if el.prefix else qname.localname
    attrs = {_qualify(k, prefixes): v for k, v in el.attrib.items()}
    children = tuple(_convert(child) for child in el if isinstance(child.tag, str))
    return XmlNode(
        tag=tag,
        attrs=MappingProxyType(attrs),
        text=el.text or '',
        tail=el.tail or '',
        children=children,
    )


def parse_part(data: bytes, part_name: str) -> XmlNode:
    """解析一个部件的字节内容。

    异常:
        ParseError: 标记格式错误。不会返回部分树。
    """
    try:
        root = etree.fromstring(data, _PARSER)
    except (etree.XMLSyntaxError, ValueError) as e:
        raise ParseError(part_name, str(e), e) from e
    if root is None:
        raise ParseError(part_name, 'empty document')
    node = _convert(root)
    logger.debug(f'parsed {part_name} root={node.tag}')
    return node
