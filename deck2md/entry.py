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

import logging
import os
import posixpath
import time
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple

from deck2md import renderer
from deck2md.archive import Archive, open_archive
from deck2md.media import DirectoryImageStore
from deck2md.outputter import MarkdownFormatter, slide_images_markdown
from deck2md.parser import parse_visual_elements
from deck2md.renderer.geometry import flatten_elements
from deck2md.types import ChartData, ConversionConfig, ConversionResult, ElementType, ImageDescriptor, Scene

if TYPE_CHECKING:
    from deck2md.media import ChartExtractor, ImageExtractor
    from deck2md.renderer.capability import RenderCapabilities

logger = logging.getLogger(__name__)


def _leaf_elements(scene: Scene):
    for slide in scene.slides:
        yield from flatten_elements(slide.elements)


def _persist_images(scene: Scene, archive: Archive,
                    image_extractor: Optional['ImageExtractor']) -> Tuple[Dict[str, str], List[ImageDescriptor], List[str]]:
    media: Dict[str, str] = {}
    descriptors: List[ImageDescriptor] = []
    problems: List[str] = []
    seen = set()
    for element in _leaf_elements(scene):
        if element.type != ElementType.Image or not element.resolved or element.image_path in seen:
            continue
        seen.add(element.image_path)
        data = archive.lookup(element.image_path)
        location = element.image_path
        if image_extractor is not None:
            try:
                location = image_extractor.persist(data, element.image_path)
            except OSError as e:
                logger.warning(f'Failed to save image {element.image_path}, archive path kept: {e}')
                problems.append(f'image {element.image_path} could not be saved: {e}')
            else:
                media[element.image_path] = location
        descriptors.append(ImageDescriptor(
            original_id=element.image_path,
            saved_location=location,
            byte_size=len(data),
            format=posixpath.splitext(element.image_path)[1].lstrip('.').lower(),
        ))
    return media, descriptors, problems


def _extract_charts(scene: Scene, archive: Archive,
                    chart_extractor: Optional['ChartExtractor']) -> Tuple[Dict[str, ChartData], int]:
    charts: Dict[str, ChartData] = {}
    count = 0
    for element in _leaf_elements(scene):
        if element.type != ElementType.Chart:
            continue
        count += 1
        if chart_extractor is None or not element.resolved or element.chart_path in charts:
            continue
        try:
            charts[element.chart_path] = chart_extractor.extract(archive.lookup(element.chart_path),
                                                                 element.chart_path)
        except Exception as e:
            logger.warning(f'Chart {element.chart_path} could not be extracted, left as unknown: {e}')
    return charts, count


def convert(source, config: Optional[ConversionConfig] = None, image_extractor: Optional['ImageExtractor'] = None,
            chart_extractor: Optional['ChartExtractor'] = None, capabilities: Optional['RenderCapabilities'] = None,
            progress_callback=None) -> ConversionResult:
    """将演示文稿转换为 Markdown。

    参数:
        source: 演示文稿的字节、路径或二进制流。
        config: 转换配置。output_mode='markdown' 做结构化合成，'images' 做逐页截图。
        image_extractor: 可选的图片保存器；未提供且设置了 image_dir 时使用 DirectoryImageStore。
        chart_extractor: 可选的图表数据提取器；未提供时图表标记为 unknown。
        capabilities: 截图策略探测结果，为空时运行时探测。
        progress_callback: 可选的进度更新回调，签名: (current, total, slide_name)。
    """
    config = config or ConversionConfig()
    start = time.perf_counter()

    logger.info('conversion started')
    with open_archive(source) as archive:
        scene = parse_visual_elements(archive, config, progress_callback=progress_callback)
        placeholder_slides = [s.number for s in scene.slides if s.placeholder]
        metadata = {
            'issues': [issue.model_dump() for issue in scene.issues],
            'placeholder_slides': placeholder_slides,
        }

        if config.output_mode == 'images':
            raster = renderer.render(scene, archive, config.render, config.output_dir, capabilities)
            title = next((s.title for s in scene.slides if s.title and not s.placeholder), None)
            markdown = slide_images_markdown(raster.slide_images, title, raster.failures)
            images = [
                ImageDescriptor(original_id=i.original_id, saved_location=i.saved_path.as_posix(),
                                byte_size=i.byte_size, format=i.format) for i in raster.slide_images
            ]
            metadata.update(strategy=raster.method, failed_slides=[f.slide_number for f in raster.failures],
                            image_count=len(images), chart_count=0)
        else:
            if image_extractor is None and config.image_dir is not None:
                image_extractor = DirectoryImageStore(config.image_dir)
            media, images, problems = _persist_images(scene, archive, image_extractor)
            charts, chart_count = _extract_charts(scene, archive, chart_extractor)
            markdown = MarkdownFormatter(config.markdown).format(scene, media, charts)
            metadata.update(strategy='markdown', failed_slides=placeholder_slides, image_count=len(images),
                            chart_count=chart_count)
            if problems:
                metadata['media_problems'] = problems

    if config.output_path is not None:
        os.makedirs(config.output_path.parent, exist_ok=True)
        with open(config.output_path, 'w', encoding='utf8', newline='') as f:
            f.write(markdown)
        logger.info(f'converted document saved to {config.output_path}')

    elapsed_ms = (time.perf_counter() - start) * 1000
    logger.info(f'conversion finished: {scene.slide_count} slides in {elapsed_ms:.0f} ms')
    return ConversionResult(markdown=markdown, images=images, slide_count=scene.slide_count,
                            elapsed_ms=elapsed_ms, metadata=metadata)
