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
"""外部办公套件截图：LibreOffice 先把整份演示文稿转为 PDF，再用 PyMuPDF 逐页栅格化。"""

from __future__ import annotations

import logging
import subprocess
import tempfile
import time
from pathlib import Path
from typing import Optional

from PIL import Image

from deck2md.archive import Archive
from deck2md.errors import CaptureTimeoutError, StrategyUnavailableError
from deck2md.renderer.base import SlideRenderer, describe_saved, encode_image, slide_filename
from deck2md.renderer.capability import find_office_executable, office_instructions
from deck2md.types import RasterResult, Scene, SlideFailure

logger = logging.getLogger(__name__)


class OfficeRenderer(SlideRenderer):
    method = 'external'

    def __init__(self, options=None, output_dir='slides', capabilities=None):
        super().__init__(options, output_dir)
        explicit = self.options.soffice_path
        if explicit is None and capabilities is not None:
            explicit = capabilities.office_path
        self._explicit_path = explicit
        self._executable: Optional[Path] = None
        self._tmpdir: Optional[tempfile.TemporaryDirectory] = None

    def open(self):
        if self._tmpdir is not None:
            return
        executable = find_office_executable(self._explicit_path)
        if executable is None:
            raise StrategyUnavailableError('external', 'LibreOffice (soffice) executable not found',
                                           office_instructions())
        try:
            import fitz  # noqa: F401
        except ImportError as e:
            raise StrategyUnavailableError('external', 'PyMuPDF is not installed', 'pip install PyMuPDF', e) from e
        self._executable = executable
        self._tmpdir = tempfile.TemporaryDirectory(prefix='deck2md-')
        super().open()

    def convert_to_pdf(self, archive: Archive, slide_count: int) -> Path:
        """整份文稿转 PDF。超时、退出码非零或没有产物都视为该策略不可用。"""
        workdir = Path(self._tmpdir.name)
        source = workdir / 'presentation.pptx'
        source.write_bytes(archive.raw)
        timeout_s = self.options.timeout / 1000 * max(1, slide_count)
        cmd = [
            str(self._executable),
            '--headless',
            '--norestore',
            f'-env:UserInstallation={(workdir / "profile").as_uri()}',
            '--convert-to',
            'pdf',
            '--outdir',
            str(workdir),
            str(source),
        ]
        logger.info(f'converting presentation to PDF with {self._executable}')
        try:
            subprocess.run(cmd, capture_output=True, timeout=timeout_s, check=True)
        except subprocess.TimeoutExpired as e:
            raise StrategyUnavailableError('external', f'conversion timed out after {timeout_s:.0f}s',
                                           original_error=e) from e
        except subprocess.CalledProcessError as e:
            stderr = (e.stderr or b'').decode('utf-8', errors='replace').strip()
            raise StrategyUnavailableError('external', f'soffice exited with code {e.returncode}: {stderr}',
                                           original_error=e) from e
        except OSError as e:
            raise StrategyUnavailableError('external', f'soffice could not be started: {e}',
                                           office_instructions(), e) from e

        pdf_path = workdir / 'presentation.pdf'
        if not pdf_path.exists():
            raise StrategyUnavailableError('external', 'soffice produced no PDF output')
        return pdf_path

    def rasterize(self, doc, number: int) -> Image.Image:
        """把 PDF 第 number 页栅格化为适配视口 × 设备缩放的图片。"""
        import fitz

        page = doc.load_page(number - 1)
        rect = page.rect
        zoom = min(self.options.width / rect.width, self.options.height / rect.height) \
            * self.options.device_scale_factor
        pix = page.get_pixmap(matrix=fitz.Matrix(zoom, zoom), alpha=False)
        return Image.frombytes('RGB', (pix.width, pix.height), pix.samples)

    def render(self, scene: Scene, archive: Archive) -> RasterResult:
        """转 PDF 后逐页栅格化。

        单页时间预算在该页栅格化完成后检查：超出预算的页面记为超时失败，
        但 PyMuPDF 调用本身不会被中途打断。整份文稿的转换时间由 soffice 子进程超时约束。
        """
        import fitz

        self.open()
        pdf_path = self.convert_to_pdf(archive, scene.slide_count)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        result = self.new_result()
        fmt = self.options.format
        budget_s = self.options.timeout / 1000

        doc = fitz.open(pdf_path)
        try:
            for slide in scene.slides:
                number = slide.number
                if number > doc.page_count:
                    logger.warning(f'Slide {number} missing from converted PDF, skipped.')
                    result.failures.append(SlideFailure(slide_number=number, reason='page missing from PDF'))
                    continue
                start = time.monotonic()
                try:
                    img = self.rasterize(doc, number)
                    if time.monotonic() - start > budget_s:
                        raise CaptureTimeoutError(number, self.options.timeout)
                    path = self.output_dir / slide_filename(number, fmt)
                    path.write_bytes(encode_image(img, fmt, self.options.quality))
                except CaptureTimeoutError as e:
                    logger.warning(f'Slide {number} rasterization exceeded its budget: {e}')
                    result.failures.append(SlideFailure(slide_number=number, reason=str(e), timed_out=True))
                    continue
                except (RuntimeError, ValueError, OSError) as e:
                    logger.warning(f'Failed to rasterize slide {number}, skipped: {e}')
                    result.failures.append(SlideFailure(slide_number=number, reason=str(e)))
                    continue
                image = describe_saved(path, number, fmt)
                logger.info(f'rendered slide {number}: {path} ({image.byte_size} bytes)')
                result.slide_images.append(image)
        finally:
            doc.close()
        return result

    def close(self):
        tmpdir, self._tmpdir = self._tmpdir, None
        if tmpdir is not None:
            tmpdir.cleanup()
        super().close()
