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

from typing import List, Sequence

from deck2md.types import ElementType, GroupElement, Position, SlideDimensions

EMU_PER_INCH = 914400
PX_PER_INCH = 96


def emu_to_px(value: int, scale: float = 1.0) -> int:
    """EMU → 像素（96 DPI），再乘以视口缩放比例。"""
    return round(value / EMU_PER_INCH * PX_PER_INCH * scale)


def fit_scale(dimensions: SlideDimensions, width: int, height: int) -> float:
    """让整页按原始宽高比放进 width × height 视口的缩放比例。"""
    slide_w = dimensions.width / EMU_PER_INCH * PX_PER_INCH
    slide_h = dimensions.height / EMU_PER_INCH * PX_PER_INCH
    if slide_w <= 0 or slide_h <= 0:
        return 1.0
    return min(width / slide_w, height / slide_h)


def compose_group(group: GroupElement, origin_x: int = 0, origin_y: int = 0) -> list:
    """返回组的直接子元素，坐标换算为绝对坐标。

    组位于 (a, b)、子元素相对偏移 (d, e) 时，结果为 (a + d, b + e)，整数精确相加。
    origin 为组自身所在坐标系的原点（嵌套组时为外层组的绝对位置）。
    """
    base_x = origin_x + group.position.x
    base_y = origin_y + group.position.y
    composed = []
    for child in group.children:
        position = Position(x=base_x + child.position.x, y=base_y + child.position.y, z=child.position.z)
        composed.append(child.model_copy(update={'position': position}))
    return composed


def flatten_elements(elements: Sequence) -> List:
    """展开所有组，得到绝对坐标下的叶子元素（保持文档顺序）。"""
    result = []
    for element in elements:
        if element.type == ElementType.Group:
            result.extend(flatten_elements(compose_group(element)))
        else:
            result.append(element)
    return result
