"""关系表与主题加载。"""

from deck2md.archive import open_archive
from deck2md.rels import load_context, rels_path_for, resolve_target, source_part_for
from tests.conftest import add_title_slide, build_package, new_presentation, save_bytes, slide_xml


def test_source_part_for_rels_paths():
    assert source_part_for('ppt/slides/_rels/slide1.xml.rels') == 'ppt/slides/slide1.xml'
    assert source_part_for('_rels/.rels') == ''
    assert source_part_for('ppt/slides/slide1.xml') is None


def test_rels_path_round_trip():
    part = 'ppt/slides/slide3.xml'
    assert source_part_for(rels_path_for(part)) == part


def test_resolve_target_relative_and_absolute():
    assert resolve_target('ppt/slides/slide1.xml', '../media/image1.png') == 'ppt/media/image1.png'
    assert resolve_target('ppt/presentation.xml', 'slides/slide2.xml') == 'ppt/slides/slide2.xml'
    assert resolve_target('ppt/slides/slide1.xml', '/ppt/media/image2.png') == 'ppt/media/image2.png'


def test_load_context_reads_package_and_part_relationships():
    archive = open_archive(build_package([slide_xml(), slide_xml()]))
    context = load_context(archive)
    office = context.relationships.first_of_type(
        '', 'http://schemas.openxmlformats.org/officeDocument/2006/relationships/officeDocument')
    assert office.target_path == 'ppt/presentation.xml'
    assert context.relationships.find('ppt/presentation.xml', 'rId2').target_path == 'ppt/slides/slide2.xml'
    assert context.relationships.find('ppt/presentation.xml', 'rId9') is None


def test_external_targets_are_kept_verbatim():
    rels = ('<Relationships xmlns="http://schemas.openxmlformats.org/package/2006/relationships">'
            '<Relationship Id="rId5" Type="urn:hyperlink" Target="https://example.com/a" TargetMode="External"/>'
            '</Relationships>')
    archive = open_archive(build_package([slide_xml()], extra_parts={'ppt/slides/_rels/slide1.xml.rels': rels}))
    rel = load_context(archive).relationships.find('ppt/slides/slide1.xml', 'rId5')
    assert rel.external
    assert rel.target_path == 'https://example.com/a'


def test_broken_relationship_part_is_skipped():
    archive = open_archive(build_package([slide_xml()], extra_parts={'ppt/slides/_rels/slide1.xml.rels': '<oops'}))
    context = load_context(archive)
    assert context.skipped_parts == ('ppt/slides/_rels/slide1.xml.rels',)
    assert len(context.relationships.for_part('ppt/slides/slide1.xml')) == 0


def test_theme_is_found_through_layout_and_master():
    prs = new_presentation()
    add_title_slide(prs, 'Themed')
    archive = open_archive(save_bytes(prs))
    context = load_context(archive)
    theme = context.theme_for('ppt/slides/slide1.xml')
    assert theme is not None
    assert theme.color('tx1') == theme.colors['dk1']
    assert theme.minor_font


def test_loading_is_deterministic():
    prs = new_presentation()
    add_title_slide(prs, 'One', 'a')
    add_title_slide(prs, 'Two', 'b')
    data = save_bytes(prs)

    def snapshot():
        context = load_context(open_archive(data))
        return {source: dict(context.relationships.for_part(source)) for source in context.relationships.sources()}

    first = snapshot()
    assert first
    for _ in range(3):
        assert snapshot() == first
