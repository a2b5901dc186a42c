"""压缩容器读取与 XML 部件解析。"""

import io

import pytest

from deck2md.archive import Archive, open_archive
from deck2md.errors import MalformedInputError, NotFoundError, ParseError
from deck2md.xmltree import parse_part
from tests.conftest import build_package, slide_xml


@pytest.fixture
def package() -> bytes:
    return build_package([slide_xml()])


def test_open_from_bytes_path_and_stream(package, write_deck):
    path = write_deck(package)
    for source in (package, path, str(path), io.BytesIO(package)):
        with open_archive(source) as archive:
            assert 'ppt/presentation.xml' in archive
            assert archive.raw == package


def test_lookup_missing_part_raises_not_found(package):
    archive = open_archive(package)
    with pytest.raises(NotFoundError) as exc_info:
        archive.lookup('ppt/slides/slide9.xml')
    assert exc_info.value.path == 'ppt/slides/slide9.xml'
    assert archive.get('ppt/slides/slide9.xml') is None


def test_lookup_normalizes_leading_slash(package):
    archive = open_archive(package)
    assert archive.lookup('/ppt/presentation.xml') == archive.lookup('ppt/presentation.xml')


def test_missing_file_raises_not_found(tmp_path):
    with pytest.raises(NotFoundError):
        open_archive(tmp_path / 'nope.pptx')


def test_non_zip_input_is_malformed():
    with pytest.raises(MalformedInputError):
        open_archive(b'%PDF-1.7 definitely not a zip')


def test_truncated_zip_is_malformed(package):
    with pytest.raises(MalformedInputError):
        open_archive(package[:40])


def test_close_is_idempotent_and_entries_stay_readable(package):
    archive = open_archive(package)
    archive.close()
    archive.close()
    assert archive.closed
    # 条目在打开时已全部读入内存
    assert archive.lookup('ppt/presentation.xml')


def test_archive_is_iterable_mapping():
    archive = Archive({'a.xml': b'<a/>', 'b/c.xml': b'<c/>'}, b'')
    assert sorted(archive) == ['a.xml', 'b/c.xml']
    assert len(archive) == 2
    assert 42 not in archive


# ---------------------------------------------------------------------------
# XML 部件
# ---------------------------------------------------------------------------

def test_parse_part_keeps_document_prefixes():
    root = parse_part(slide_xml().encode('utf-8'), 'ppt/slides/slide1.xml')
    assert root.tag == 'p:sld'
    assert root.local_name == 'sld'
    assert root.find_path('p:cSld/p:spTree') is not None


def test_parse_part_qualifies_attributes_and_drops_comments():
    data = (b'<p:pic xmlns:p="urn:p" xmlns:r="urn:r"><!-- hidden --><p:blip r:embed="rId7"/>'
            b'<?pi ignored?><p:x/></p:pic>')
    root = parse_part(data, 'part.xml')
    assert [c.tag for c in root.children] == ['p:blip', 'p:x']
    assert root.find('p:blip').get('r:embed') == 'rId7'


def test_parse_part_iter_is_document_order():
    root = parse_part(b'<a><b><c/></b><d/></a>', 'part.xml')
    assert [n.tag for n in root.iter()] == ['a', 'b', 'c', 'd']
    assert [n.tag for n in root.iter('d')] == ['d']


def test_text_content_includes_tails():
    root = parse_part(b'<a>one<b>two</b>three</a>', 'part.xml')
    assert root.text_content() == 'onetwothree'


def test_malformed_part_raises_parse_error():
    with pytest.raises(ParseError) as exc_info:
        parse_part(b'<p:sld><unclosed', 'ppt/slides/slide1.xml')
    assert exc_info.value.part_name == 'ppt/slides/slide1.xml'
    assert isinstance(exc_info.value, MalformedInputError)
