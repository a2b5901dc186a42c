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
"""逐页截图。

两种策略实现同一个 SlideRenderer 约定：
- replica：合成复刻 + 无头 Chromium（playwright）
- external：LibreOffice 转 PDF + PyMuPDF 栅格化
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

from deck2md.archive import Archive
from deck2md.errors import StrategyUnavailableError, UnsupportedFeatureError
from deck2md.renderer.base import SlideRenderer, slide_filename
from deck2md.renderer.capability import RenderCapabilities, probe_capabilities, remediation_text
from deck2md.renderer.geometry import compose_group, emu_to_px, fit_scale, flatten_elements
from deck2md.renderer.office import OfficeRenderer
from deck2md.renderer.replica import ReplicaRenderer
from deck2md.types import RasterResult, RenderOptions, Scene

logger = logging.getLogger(__name__)

# 策略名 → 构造函数 (options, output_dir, capabilities)
STRATEGIES = {
    'replica': ReplicaRenderer,
    'external': OfficeRenderer,
}


def strategy_order(options: RenderOptions) -> List[str]:
    order = ['external', 'replica'] if options.prefer_external_tool else ['replica', 'external']
    return order if options.allow_fallback else order[:1]


def _available(name: str, capabilities: RenderCapabilities) -> bool:
    return capabilities.office if name == 'external' else capabilities.browser


def render(scene: Scene, archive: Archive, options: Optional[RenderOptions] = None, output_dir='slides',
           capabilities: Optional[RenderCapabilities] = None) -> RasterResult:
    """用第一个可用的策略为每页截图。

    某一策略初始化失败时，若允许回退则换用另一种；一次调用中所有页面都来自同一策略。

    异常:
        UnsupportedFeatureError: 没有可用的策略，message 中带有安装建议。
    """
    options = options or RenderOptions()
    if capabilities is None:
        capabilities = probe_capabilities(options.soffice_path)
    output_dir = Path(output_dir)

    reasons = []
    last_error = None
    for name in strategy_order(options):
        if not _available(name, capabilities):
            reason = capabilities.reasons.get(name, 'not available')
            logger.info(f'rendering strategy {name} skipped: {reason}')
            reasons.append(f'{name}: {reason}')
            continue
        renderer = STRATEGIES[name](options, output_dir, capabilities)
        try:
            with renderer:
                result = renderer.render(scene, archive)
        except StrategyUnavailableError as e:
            logger.warning(f'rendering strategy {name} failed to initialize: {e.reason}')
            reasons.append(f'{name}: {e.reason}')
            last_error = e
            continue
        logger.info(f'rendered {result.slide_count}/{scene.slide_count} slides with {name}')
        return result

    remediation = remediation_text(capabilities)
    if last_error is not None and last_error.remediation:
        remediation = last_error.remediation
    raise UnsupportedFeatureError('No rendering strategy available (' + '; '.join(reasons) + ')',
                                  remediation, last_error)


__all__ = [
    'OfficeRenderer',
    'RenderCapabilities',
    'ReplicaRenderer',
    'STRATEGIES',
    'SlideRenderer',
    'compose_group',
    'emu_to_px',
    'fit_scale',
    'flatten_elements',
    'probe_capabilities',
    'remediation_text',
    'render',
    'slide_filename',
    'strategy_order',
]
