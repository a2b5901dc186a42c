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
from pathlib import Path
from typing import Optional

from PIL import Image

from deck2md.archive import Archive
from deck2md.types import RasterResult, RenderOptions, Scene, SlideImage

logger = logging.getLogger(__name__)


def slide_filename(number: int, fmt: str) -> str:
    return f'slide-{number:03d}.{fmt}'


def encode_image(img: Image.Image, fmt: str, quality: int) -> bytes:
    """用 Pillow 按目标格式编码；JPEG 不支持透明通道，先合成到白底。"""
    buf = io.BytesIO()
    if fmt == 'jpeg':
        if img.mode in ('RGBA', 'LA', 'P'):
            rgba = img.convert('RGBA')
            background = Image.new('RGB', rgba.size, (255, 255, 255))
            background.paste(rgba, mask=rgba.split()[-1])
            img = background
        elif img.mode != 'RGB':
            img = img.convert('RGB')
        img.save(buf, format='JPEG', quality=quality)
    else:
        img.save(buf, format='PNG')
    return buf.getvalue()


def describe_saved(path: Path, number: int, fmt: str) -> SlideImage:
    """读回已写入的截图，得到字节数和像素尺寸。"""
    with Image.open(path) as img:
        width, height = img.size
    return SlideImage(
        slide_number=number,
        original_id=f'slide{number}',
        saved_path=path,
        byte_size=path.stat().st_size,
        format=fmt,
        width=width,
        height=height,
    )


class SlideRenderer:
    """截图策略的公共约定。

    open() 获取资源（失败时抛出 StrategyUnavailableError），render() 逐页截图，
    单页失败记录在 RasterResult.failures 中；close() 可重复调用。
    """

    method = 'replica'

    def __init__(self, options: Optional[RenderOptions] = None, output_dir='slides'):
        self.options = options or RenderOptions()
        self.output_dir = Path(output_dir)
        self._opened = False

    def open(self):
        self._opened = True

    def render(self, scene: Scene, archive: Archive) -> RasterResult:
        raise NotImplementedError

    def close(self):
        self._opened = False

    def new_result(self) -> RasterResult:
        return RasterResult(
            method=self.method,
            width=self.options.width,
            height=self.options.height,
            quality=self.options.quality,
            format=self.options.format,
        )

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
