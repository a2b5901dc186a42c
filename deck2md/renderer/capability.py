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
"""运行时探测可用的截图策略，并给出安装建议。"""

from __future__ import annotations

import importlib.util
import logging
import os
import shutil
import sys
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel

logger = logging.getLogger(__name__)

DOWNLOAD_URL = 'https://www.libreoffice.org/download/download/'

BROWSER_REMEDIATION = '''Headless browser capture needs Playwright with Chromium:
   pip install playwright
   playwright install chromium
'''

_OFFICE_INSTRUCTIONS = {
    'win32': f'''LibreOffice installation for Windows:
1. Download LibreOffice from: {DOWNLOAD_URL}
2. Run the installer; default path: C:\\Program Files\\LibreOffice
Alternative: choco install libreoffice-fresh
''',
    'darwin': f'''LibreOffice installation for macOS:
1. Download LibreOffice from: {DOWNLOAD_URL}
2. Drag LibreOffice to Applications; default path: /Applications/LibreOffice.app
Alternative: brew install --cask libreoffice
''',
    'linux': f'''LibreOffice installation for Linux:
   Ubuntu/Debian: sudo apt install libreoffice
   Fedora:        sudo dnf install libreoffice
   Arch Linux:    sudo pacman -S libreoffice-fresh
Alternative: download from {DOWNLOAD_URL}
''',
}


class RenderCapabilities(BaseModel):
    """当前环境可用的截图策略。测试和宿主程序可以直接构造以跳过探测。"""

    browser: bool = False
    """playwright 已安装（Chromium 是否可启动要到 open() 时才能确定）"""

    office: bool = False
    """找到了 soffice 且 PyMuPDF 可用"""

    office_path: Optional[Path] = None
    reasons: Dict[str, str] = {}
    """策略名 → 不可用原因"""


def _candidate_paths() -> List[str]:
    if sys.platform == 'win32':
        program_files = [os.environ.get('PROGRAMFILES'), os.environ.get('PROGRAMFILES(X86)'),
                         'C:\\Program Files', 'C:\\Program Files (x86)']
        return [os.path.join(p, 'LibreOffice', 'program', 'soffice.exe') for p in program_files if p]
    if sys.platform == 'darwin':
        return ['/Applications/LibreOffice.app/Contents/MacOS/soffice', '/usr/local/bin/soffice',
                '/opt/homebrew/bin/soffice']
    return ['/usr/bin/soffice', '/usr/local/bin/soffice', '/opt/libreoffice/program/soffice',
            '/snap/bin/libreoffice']


def find_office_executable(soffice_path=None) -> Optional[Path]:
    """查找 LibreOffice 可执行文件：显式路径 → PATH → 常见安装位置。"""
    if soffice_path is not None:
        path = Path(soffice_path)
        return path if path.is_file() else None
    for name in ('soffice', 'libreoffice'):
        found = shutil.which(name)
        if found:
            return Path(found)
    for candidate in _candidate_paths():
        if os.path.isfile(candidate):
            return Path(candidate)
    return None


def probe_capabilities(soffice_path=None) -> RenderCapabilities:
    reasons = {}

    browser = importlib.util.find_spec('playwright') is not None
    if not browser:
        reasons['replica'] = 'playwright is not installed'

    office_path = find_office_executable(soffice_path)
    has_fitz = importlib.util.find_spec('fitz') is not None
    office = office_path is not None and has_fitz
    if office_path is None:
        reasons['external'] = 'LibreOffice (soffice) executable not found'
    elif not has_fitz:
        reasons['external'] = 'PyMuPDF is not installed'

    capabilities = RenderCapabilities(browser=browser, office=office, office_path=office_path, reasons=reasons)
    logger.debug(f'render capabilities: {capabilities}')
    return capabilities


def office_instructions(platform: Optional[str] = None) -> str:
    platform = platform or sys.platform
    key = 'linux' if platform.startswith('linux') else platform
    return _OFFICE_INSTRUCTIONS.get(key, f'Please visit {DOWNLOAD_URL} to download LibreOffice for your platform.\n')


def remediation_text(capabilities: Optional[RenderCapabilities] = None, platform: Optional[str] = None) -> str:
    """针对缺失的策略给出安装建议；capabilities 为空时两种都给出。"""
    parts = []
    if capabilities is None or not capabilities.browser:
        parts.append(BROWSER_REMEDIATION)
    if capabilities is None or not capabilities.office:
        parts.append(office_instructions(platform))
    return '\n'.join(parts).strip()
