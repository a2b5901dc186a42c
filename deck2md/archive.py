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
"""演示文稿压缩容器的只读访问。

打开时一次性读出全部条目，之后的查找不再触碰底层文件句柄，
因此多个线程可以同时读取同一个 Archive。
"""

from __future__ import annotations

import io
import logging
import zipfile
import zlib
from pathlib import Path
from types import MappingProxyType
from typing import BinaryIO, Iterator, List, Mapping, Optional, Union

from deck2md.errors import MalformedInputError, NotFoundError

logger = logging.getLogger(__name__)

ZIP_SIGNATURE = b'PK\x03\x04'

ArchiveSource = Union[bytes, bytearray, str, Path, BinaryIO]


class Archive:
    """归档内路径 → 字节内容 的不可变映射。"""

    def __init__(self, entries: Mapping[str, bytes], raw: bytes, name: str = '<memory>'):
        self._entries = MappingProxyType(dict(entries))
        self._raw = raw
        self.name = name
        self._closed = False

    @property
    def raw(self) -> bytes:
        """原始容器字节，供外部渲染工具使用。"""
        return self._raw

    @property
    def closed(self) -> bool:
        return self._closed

    def lookup(self, path: str) -> bytes:
        data = self._entries.get(_normalize(path))
        if data is None:
            raise NotFoundError(path)
        return data

    def get(self, path: str) -> Optional[bytes]:
        return self._entries.get(_normalize(path))

    def names(self) -> List[str]:
        return list(self._entries)

    def __contains__(self, path) -> bool:
        return isinstance(path, str) and _normalize(path) in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def close(self):
        if self._closed:
            return
        self._closed = True
        logger.debug(f'archive {self.name} closed')

    def __enter__(self) -> 'Archive':
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


def _normalize(path: str) -> str:
    return path.replace('\\', '/').lstrip('/')


def _read_source(source: ArchiveSource) -> tuple[bytes, str]:
    if isinstance(source, (bytes, bytearray)):
        return bytes(source), '<memory>'
    if isinstance(source, (str, Path)):
        path = Path(source)
        try:
            return path.read_bytes(), str(path)
        except FileNotFoundError as e:
            raise NotFoundError(str(path), e) from e
        except OSError as e:
            raise MalformedInputError(f'Cannot read {path}: {e}', e) from e
    if hasattr(source, 'read'):
        data = source.read()
        if not isinstance(data, (bytes, bytearray)):
            raise MalformedInputError('Stream must be opened in binary mode')
        return bytes(data), getattr(source, 'name', '<stream>')
    raise MalformedInputError(f'Unsupported archive source: {type(source).__name__}')


def open_archive(source: ArchiveSource) -> Archive:
    """打开一个演示文稿容器。

    参数:
        source: 字节串、文件路径或二进制流。

    返回:
        已完整读入内存的 Archive。

    异常:
        NotFoundError: 路径不存在。
        MalformedInputError: 不是 zip 容器或容器已损坏。
    """
    data, name = _read_source(source)
    if not data.startswith(ZIP_SIGNATURE):
        raise MalformedInputError(f'{name} is not a zip-based presentation archive')

    try:
        with zipfile.ZipFile(io.BytesIO(data)) as zf:
            entries = {}
            for info in zf.infolist():
                if info.is_dir():
                    continue
                entries[_normalize(info.filename)] = zf.read(info)
    except (zipfile.BadZipFile, zipfile.LargeZipFile, zlib.error, EOFError, ValueError) as e:
        raise MalformedInputError(f'{name} is corrupt: {e}', e) from e

    logger.debug(f'opened archive {name} with {len(entries)} entries')
    return Archive(entries, data, name)
