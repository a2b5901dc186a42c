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
"""deck2md 异常层级。

- Deck2MdError
  - NotFoundError：必需的部件不存在
  - MalformedInputError：容器无法打开 / 根文档无法解析
    - ParseError：单个部件 XML 格式错误
  - UnsupportedFeatureError：没有可用的渲染策略
    - StrategyUnavailableError：某一种渲染策略初始化失败
  - CaptureTimeoutError：单页截图超时（同时是内置 TimeoutError）

PartialExtractionWarning 不是异常：单页/单元素失败被隔离后以 warnings.warn 发出。
"""

from __future__ import annotations

from typing import Optional


class Deck2MdError(Exception):
    """deck2md 所有异常的基类。"""

    def __init__(self, message: str, original_error: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.original_error = original_error


class NotFoundError(Deck2MdError):
    """归档中缺少必需的部件。"""

    def __init__(self, path: str, original_error: Optional[BaseException] = None):
        super().__init__(f'Part not found in archive: {path}', original_error)
        self.path = path


class MalformedInputError(Deck2MdError):
    """容器无法打开，或根文档部件无法解析。"""


class ParseError(MalformedInputError):
    """单个部件的 XML 无法解析。不会返回半成品树。"""

    def __init__(self, part_name: str, reason: str, original_error: Optional[BaseException] = None):
        super().__init__(f'Failed to parse {part_name}: {reason}', original_error)
        self.part_name = part_name


class UnsupportedFeatureError(Deck2MdError):
    """没有可用的渲染策略。remediation 为给调用方的安装/修复建议。"""

    def __init__(self, message: str, remediation: str = '', original_error: Optional[BaseException] = None):
        full = f'{message}\n{remediation}'.rstrip() if remediation else message
        super().__init__(full, original_error)
        self.remediation = remediation


class StrategyUnavailableError(UnsupportedFeatureError):
    """单个渲染策略初始化失败（引擎或外部工具不可用），对该策略是致命的，不自动重试。"""

    def __init__(self, strategy: str, reason: str, remediation: str = '',
                 original_error: Optional[BaseException] = None):
        super().__init__(f'Rendering strategy "{strategy}" unavailable: {reason}', remediation, original_error)
        self.strategy = strategy
        self.reason = reason


class CaptureTimeoutError(Deck2MdError, TimeoutError):
    """单页截图超出时间预算。只让这一页失败。"""

    def __init__(self, slide_number: int, timeout_ms: int, original_error: Optional[BaseException] = None):
        super().__init__(f'Capture of slide {slide_number} exceeded {timeout_ms} ms', original_error)
        self.slide_number = slide_number
        self.timeout_ms = timeout_ms


class PartialExtractionWarning(UserWarning):
    """某一页或某个元素解析失败，已被隔离或替换为占位内容。"""

    def __init__(self, message: str, slide_number: Optional[int] = None, element_id: Optional[str] = None):
        super().__init__(message)
        self.slide_number = slide_number
        self.element_id = element_id
