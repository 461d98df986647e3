"""Tests for the tag rewriters wired by build_markup_rewriter."""

import pytest

from image_optimizer.config.site_config import SiteConfig
from image_optimizer.rewrite.handlers import build_markup_rewriter, largest_declared_size

CDN = "https://x.b-cdn.net/wp-content/uploads"


def rewrite(config, markup, tags=None):
    return build_markup_rewriter(config, tags).rewrite(markup)


def rewrite_chunks(config, chunks):
    transform = build_markup_rewriter(config).transform()
    return "".join(transform.write(chunk) for chunk in chunks) + transform.end()


class TestImageTags:
    def test_explicit_size_and_lazy_loading(self, site_config):
        markup = '<img src="https://site.com/wp-content/uploads/a-300x200.jpg" width="300" height="200">'

        result = rewrite(site_config, markup)

        assert result == (
            f'<img src="{CDN}/a.jpg?width=300&height=200&quality=85&crop=300,200&crop_gravity=center"'
            ' width="300" height="200" loading="lazy">'
        )

    def test_size_from_filename(self, site_config):
        result = rewrite(site_config, '<img src="https://site.com/wp-content/uploads/a-300x200.jpg">')

        assert result == (
            f'<img src="{CDN}/a.jpg?width=300&height=200&quality=85&crop=300,200&crop_gravity=center"'
            ' loading="lazy">'
        )

    def test_srcset_sizes_from_filenames(self, bare_config):
        markup = (
            '<img srcset="https://site.com/wp-content/uploads/a-300x200.jpg 300w, '
            'https://site.com/wp-content/uploads/a-150x100.jpg 150w">'
        )

        result = rewrite(bare_config, markup)

        assert result == (
            f'<img srcset="{CDN}/a.jpg?width=300&height=200 300w, {CDN}/a.jpg?width=150&height=100 150w">'
        )

    def test_srcset_entries_sized_independently(self, site_config):
        markup = (
            '<img srcset="https://site.com/wp-content/uploads/a-300x200.jpg 300w, '
            'https://site.com/wp-content/uploads/a.jpg 1024w">'
        )

        result = rewrite(site_config, markup)

        assert result == (
            f'<img srcset="{CDN}/a.jpg?width=300&height=200&quality=85&crop=300,200&crop_gravity=center 300w, '
            f'{CDN}/a.jpg?width=1024&height=auto&quality=85 1024w" loading="lazy">'
        )

    def test_existing_loading_attribute_is_kept(self, site_config):
        result = rewrite(site_config, '<img src="/wp-content/uploads/a.jpg" loading="eager">')

        assert 'loading="eager"' in result
        assert "lazy" not in result

    def test_lazy_load_disabled(self, bare_config):
        result = rewrite(bare_config, '<img src="/wp-content/uploads/a.jpg">')

        assert result == f'<img src="{CDN}/a.jpg?width=auto&height=auto">'

    def test_lazy_load_plugin_attributes(self, bare_config):
        markup = (
            '<img src="data:image/gif;base64,R0lGOD" '
            'data-lazy-src="https://site.com/wp-content/uploads/a-64x64.png">'
        )

        result = rewrite(bare_config, markup)

        assert 'src="data:image/gif;base64,R0lGOD"' in result
        assert f'data-lazy-src="{CDN}/a.png?width=64&height=64"' in result

    def test_foreign_image_is_untouched(self, bare_config):
        markup = '<img src="https://other.com/a.jpg">'

        assert rewrite(bare_config, markup) == markup

    def test_toggle_off(self):
        config = SiteConfig(BUNNY_CDN_HOSTNAME="x.b-cdn.net", REWRITE_IMAGE_TAGS=False)
        markup = '<img src="/wp-content/uploads/a.jpg">'

        assert rewrite(config, markup) == markup

    def test_rewriting_twice_changes_nothing(self, site_config):
        once = rewrite(site_config, '<img src="https://site.com/wp-content/uploads/a-300x200.jpg">')

        assert rewrite(site_config, once) == once


class TestAnchorTags:
    def test_href_sent_as_is(self, site_config):
        result = rewrite(site_config, '<a href="https://site.com/wp-content/uploads/big-1024x768.jpg">x</a>')

        assert result == f'<a href="{CDN}/big-1024x768.jpg?width=auto&height=auto&quality=85">x</a>'

    def test_page_links_are_untouched(self, site_config):
        markup = '<a href="https://site.com/about/">x</a>'

        assert rewrite(site_config, markup) == markup


class TestLinkTags:
    def test_touch_icon_sized_from_sizes(self, bare_config):
        markup = (
            '<link rel="apple-touch-icon" sizes="180x180" '
            'href="https://site.com/wp-content/uploads/icon-180x180.png">'
        )

        result = rewrite(bare_config, markup)

        assert result == (
            '<link rel="apple-touch-icon" sizes="180x180" '
            f'href="{CDN}/icon.png?width=180&height=180">'
        )

    def test_ico_files_are_untouched(self, bare_config):
        markup = '<link rel="icon" href="https://site.com/wp-content/uploads/favicon.ico">'

        assert rewrite(bare_config, markup) == markup

    def test_stylesheet_links_are_untouched(self, bare_config):
        markup = '<link rel="stylesheet" href="https://site.com/wp-content/themes/t/bg.png">'

        assert rewrite(bare_config, markup) == markup

    @pytest.mark.parametrize(
        "sizes,expected",
        [
            ("16x16 32x32", ("32", "32")),
            ("any", (None, None)),
            (None, (None, None)),
            ("40x40 64x32", ("64", "32")),
        ],
    )
    def test_largest_declared_size(self, sizes, expected):
        assert largest_declared_size(sizes) == expected


class TestDivTags:
    def test_background_in_style_attribute(self, site_config):
        markup = '<div style="background-image: url(https://site.com/wp-content/uploads/bg.jpg)">x</div>'

        result = rewrite(site_config, markup)

        assert result == (
            f"<div style=\"background-image: url('{CDN}/bg.jpg?width=auto&height=auto&quality=85')\">x</div>"
        )

    def test_ultimate_addons_attributes(self, bare_config):
        markup = (
            '<div data-ultimate-bg="https://site.com/wp-content/uploads/bg-800x600.jpg" '
            'data-image-id="https://site.com/wp-content/uploads/id.jpg"></div>'
        )

        result = rewrite(bare_config, markup)

        assert f'data-ultimate-bg="{CDN}/bg.jpg?width=800&height=600"' in result
        assert f'data-image-id="{CDN}/id.jpg?width=auto&height=auto"' in result


class TestSvgTags:
    HIDDEN = (
        '<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 0 0" width="0" height="0" '
        'focusable="false" role="none" '
        'style="visibility: hidden; position: absolute; left: -9999px; overflow: hidden;">'
        '<defs><filter id="f"><feColorMatrix/></filter></defs></svg>'
    )

    def test_hidden_block_editor_svg_is_removed(self, bare_config):
        assert rewrite(bare_config, f"<body>{self.HIDDEN}<p>x</p></body>") == "<body><p>x</p></body>"

    def test_svg_with_class_is_kept(self, bare_config):
        markup = self.HIDDEN.replace("<svg ", '<svg class="icon" ')

        assert rewrite(bare_config, markup) == markup

    def test_toggle_off(self):
        config = SiteConfig(BUNNY_CDN_HOSTNAME="x.b-cdn.net", REWRITE_SVG_TAGS=False)

        assert rewrite(config, self.HIDDEN) == self.HIDDEN


class TestStyleTags:
    def test_url_split_across_chunks(self, bare_config):
        chunks = ["<style>body{background:url(/wp-con", "tent/uploads/b.png)}</st", "yle><p>x</p>"]

        result = rewrite_chunks(bare_config, chunks)

        assert result == (
            f"<style>body{{background:url('{CDN}/b.png?width=auto&height=auto')}}</style><p>x</p>"
        )

    def test_child_combinator_is_unescaped(self, bare_config):
        result = rewrite(bare_config, "<style>div &gt; p{color:red}</style>")

        assert result == "<style>div > p{color:red}</style>"

    def test_admin_bar_css_is_untouched(self, bare_config):
        markup = "<style>#wpadminbar{background:url(/wp-content/uploads/x.png)}</style>"

        assert rewrite(bare_config, markup) == markup

    def test_several_style_blocks(self, bare_config):
        markup = (
            "<style>a{background:url(/wp-content/uploads/a.png)}</style>"
            "<style>b{color:red}</style>"
        )

        result = rewrite(bare_config, markup)

        assert result == (
            f"<style>a{{background:url('{CDN}/a.png?width=auto&height=auto')}}</style>"
            "<style>b{color:red}</style>"
        )

    def test_unterminated_style_is_flushed(self, bare_config):
        result = rewrite(bare_config, "<style>a{background:url(/wp-content/uploads/a.png)}")

        assert result == f"<style>a{{background:url('{CDN}/a.png?width=auto&height=auto')}}"

    def test_toggle_off(self):
        config = SiteConfig(BUNNY_CDN_HOSTNAME="x.b-cdn.net", REWRITE_STYLE_TAGS=False)
        markup = "<style>a{background:url(/wp-content/uploads/a.png)}</style>"

        assert rewrite(config, markup) == markup


def test_tag_subset(bare_config):
    markup = '<a href="/wp-content/uploads/a.jpg"><img src="/wp-content/uploads/a.jpg"></a>'

    result = rewrite(bare_config, markup, tags=("img",))

    assert result == f'<a href="/wp-content/uploads/a.jpg"><img src="{CDN}/a.jpg?width=auto&height=auto"></a>'
