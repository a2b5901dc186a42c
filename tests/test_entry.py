"""convert 入口：两种输出模式、图片/图表协作方、输出文件。"""

import logging

import pytest

from deck2md import convert, renderer
from deck2md.errors import MalformedInputError, UnsupportedFeatureError
from deck2md.log import setup_logging
from deck2md.media import ChartExtractor, DirectoryImageStore, ImageExtractor
from deck2md.renderer.capability import RenderCapabilities
from deck2md.types import ChartData, ChartSeries, ConversionConfig, MarkdownOptions

from tests.conftest import FakeOfficeRenderer, FakeRenderer, replace_part, split_by_slides


class RecordingChartExtractor:
    def __init__(self):
        self.calls = []

    def extract(self, chart_part, part_name):
        self.calls.append(part_name)
        return ChartData(chart_type='bar', categories=['Q1', 'Q2'], series=[ChartSeries(name='Sales', values=[1, 2])])


class FailingChartExtractor:
    def extract(self, chart_part, part_name):
        raise ValueError('unsupported chart')


class MemoryImageStore:
    def __init__(self):
        self.saved = {}

    def persist(self, data, name):
        self.saved[name] = data
        return f'memory://{len(self.saved)}'


def _config(**kwargs):
    return ConversionConfig(disable_tqdm=True, **kwargs)


# ---------------------------------------------------------------------------
# markdown 模式
# ---------------------------------------------------------------------------

def test_convert_markdown_from_path(simple_deck, write_deck):
    result = convert(write_deck(simple_deck), _config())
    assert result.slide_count == 3
    assert result.elapsed_ms >= 0
    assert result.metadata['strategy'] == 'markdown'
    assert result.metadata['failed_slides'] == []
    slides = split_by_slides(result.markdown)
    assert sorted(slides) == [1, 2, 3]
    assert '# Introduction' in slides[1]


def test_convert_writes_output_file(simple_deck, tmp_path):
    output = tmp_path / 'out' / 'deck.md'
    result = convert(simple_deck, _config(output_path=output))
    assert output.read_text(encoding='utf-8') == result.markdown


def test_convert_is_deterministic(simple_deck):
    config = _config(markdown=MarkdownOptions(enable_slides=True, try_multi_column=True))
    assert convert(simple_deck, config).markdown == convert(simple_deck, config).markdown


def test_images_reference_archive_paths_without_extractor(rich_deck):
    result = convert(rich_deck, _config())
    assert "](ppt/media/image1.png)" in result.markdown
    assert [(i.original_id, i.saved_location, i.format) for i in result.images] == [
        ('ppt/media/image1.png', 'ppt/media/image1.png', 'png')]
    assert result.images[0].byte_size > 0


def test_images_saved_to_image_dir(rich_deck, tmp_path):
    image_dir = tmp_path / 'img'
    result = convert(rich_deck, _config(image_dir=image_dir))
    saved = image_dir / 'image_1.png'
    assert saved.exists()
    assert f']({saved.as_posix()})' in result.markdown
    assert result.images[0].saved_location == saved.as_posix()
    assert result.metadata['image_count'] == 1


def test_custom_image_extractor(rich_deck):
    store = MemoryImageStore()
    assert isinstance(store, ImageExtractor)
    result = convert(rich_deck, _config(), image_extractor=store)
    assert list(store.saved) == ['ppt/media/image1.png']
    assert '(memory%3A//1)' in result.markdown


def test_chart_extractor_fills_chart_grid(rich_deck):
    extractor = RecordingChartExtractor()
    assert isinstance(extractor, ChartExtractor)
    result = convert(rich_deck, _config(), chart_extractor=extractor)
    assert len(extractor.calls) == 1
    assert '| Category | Sales |' in result.markdown
    assert result.metadata['chart_count'] == 1


def test_chart_without_extractor_is_unknown(rich_deck):
    assert '<!-- chart: unknown -->' in convert(rich_deck, _config()).markdown


def test_failing_chart_extractor_degrades_to_unknown(rich_deck):
    result = convert(rich_deck, _config(), chart_extractor=FailingChartExtractor())
    assert '<!-- chart: unknown -->' in result.markdown


def test_table_is_rendered(rich_deck):
    markdown = convert(rich_deck, _config()).markdown
    assert '| Name | Value |\n| --- | --- |\n| alpha | 1 |' in markdown


def test_corrupt_slide_is_reported_in_metadata(simple_deck):
    data = replace_part(simple_deck, 'ppt/slides/slide3.xml', b'not xml at all')
    with pytest.warns(UserWarning):
        result = convert(data, _config())
    assert result.slide_count == 3
    assert result.metadata['placeholder_slides'] == [3]
    assert result.metadata['issues'][0]['slide_number'] == 3
    assert '<!-- slide 3 could not be parsed -->' in result.markdown


def test_corrupt_container_raises():
    with pytest.raises(MalformedInputError):
        convert(b'PK\x03\x04 but nothing else', _config())


# ---------------------------------------------------------------------------
# images 模式
# ---------------------------------------------------------------------------

@pytest.fixture
def fake_strategies(monkeypatch):
    monkeypatch.setattr(renderer, 'STRATEGIES', {'replica': FakeRenderer, 'external': FakeOfficeRenderer})


def test_convert_images_mode(fake_strategies, simple_deck, tmp_path):
    config = _config(output_mode='images', output_dir=tmp_path / 'slides')
    result = convert(simple_deck, config, capabilities=RenderCapabilities(browser=True))
    assert result.metadata['strategy'] == 'replica'
    assert result.markdown.startswith('# Introduction\n')
    assert '## Slide 3' in result.markdown
    assert [i.original_id for i in result.images] == ['slide1', 'slide2', 'slide3']
    assert all(i.saved_location.endswith('.png') for i in result.images)
    assert (tmp_path / 'slides' / 'slide-002.png').exists()


def test_convert_images_mode_without_strategies(fake_strategies, simple_deck, tmp_path):
    config = _config(output_mode='images', output_dir=tmp_path / 'slides')
    with pytest.raises(UnsupportedFeatureError):
        convert(simple_deck, config, capabilities=RenderCapabilities())


# ---------------------------------------------------------------------------
# 协作方与日志
# ---------------------------------------------------------------------------

def test_directory_image_store_deduplicates(tmp_path):
    store = DirectoryImageStore(tmp_path / 'img')
    first = store.persist(b'a', 'ppt/media/image1.png')
    again = store.persist(b'a', 'ppt/media/image1.png')
    other = store.persist(b'b', 'ppt/media/image2')
    assert first == again
    assert first.endswith('image_1.png')
    assert other.endswith('image_2.bin')
    assert len(store.saved) == 2


def test_setup_logging_replaces_own_handlers():
    extra = logging.NullHandler()
    logger = setup_logging(logging.DEBUG, compat_tqdm=False, external_handlers=[extra])
    logger = setup_logging(logging.INFO, compat_tqdm=True)
    assert logger.name == 'deck2md'
    assert logger.level == logging.INFO
    assert extra not in logger.handlers
    assert len(logger.handlers) == 1
    assert not logger.propagate
    logger.handlers.clear()
    logger.propagate = True
