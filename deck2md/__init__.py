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

from deck2md.entry import convert
from deck2md.errors import (
    CaptureTimeoutError,
    Deck2MdError,
    MalformedInputError,
    NotFoundError,
    ParseError,
    PartialExtractionWarning,
    StrategyUnavailableError,
    UnsupportedFeatureError,
)
from deck2md.layout import (
    create_divider,
    format_columns,
    format_header_footer,
    format_list,
    format_table,
    format_with_size,
    sort_by_position,
)
from deck2md.parser import parse_visual_elements
from deck2md.renderer import render
from deck2md.types import ConversionConfig, LayoutOptions, MarkdownOptions, RenderOptions

__all__ = [
    'CaptureTimeoutError',
    'ConversionConfig',
    'Deck2MdError',
    'LayoutOptions',
    'MalformedInputError',
    'MarkdownOptions',
    'NotFoundError',
    'ParseError',
    'PartialExtractionWarning',
    'RenderOptions',
    'StrategyUnavailableError',
    'UnsupportedFeatureError',
    'convert',
    'create_divider',
    'format_columns',
    'format_header_footer',
    'format_list',
    'format_table',
    'format_with_size',
    'parse_visual_elements',
    'render',
    'sort_by_position',
]
