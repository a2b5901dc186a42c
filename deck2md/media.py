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

import logging
import os
import threading
from pathlib import Path
from typing import Dict, Protocol, runtime_checkable

from deck2md.types import ChartData

logger = logging.getLogger(__name__)


@runtime_checkable
class ImageExtractor(Protocol):
    """保存嵌入图片，返回 Markdown 中引用的位置。"""

    def persist(self, data: bytes, name: str) -> str:
        ...


@runtime_checkable
class ChartExtractor(Protocol):
    """从图表部件中提取数据。"""

    def extract(self, chart_part: bytes, part_name: str) -> ChartData:
        ...


class DirectoryImageStore:
    """把图片写入目录，文件名为 image_{n}{ext}。同一归档路径只写一次。"""

    def __init__(self, image_dir):
        self.image_dir = Path(image_dir)
        self._saved: Dict[str, str] = {}
        self._lock = threading.Lock()

    def persist(self, data: bytes, name: str) -> str:
        with self._lock:
            if name in self._saved:
                return self._saved[name]
            self.image_dir.mkdir(parents=True, exist_ok=True)
            ext = os.path.splitext(name)[1].lower() or '.bin'
            output_path = self.image_dir / f'image_{len(self._saved) + 1}{ext}'
            output_path.write_bytes(data)
            location = output_path.as_posix()
            self._saved[name] = location
            logger.debug(f'image {name} saved to {location}')
            return location

    @property
    def saved(self) -> Dict[str, str]:
        return dict(self._saved)
