from image_optimizer.rewrite.attributes import (
    is_valid_asset,
    rewrite_attributes,
    rewrite_candidate_lists,
    rewrite_descriptor_list,
    rewrite_reference,
)
from image_optimizer.rewrite.html_stream import Element

CDN = "https://x.b-cdn.net/wp-content/uploads"


def make_img(**attrs):
    pairs = [(name.replace("_", "-"), value) for name, value in attrs.items()]
    return Element("img", pairs, "<img>")


class TestIsValidAsset:
    def test_asset_under_wp_content(self, site_config):
        assert is_valid_asset("https://site.com/wp-content/uploads/a.jpg", site_config)

    def test_rejects_empty_and_missing(self, site_config):
        assert not is_valid_asset("", site_config)
        assert not is_valid_asset(None, site_config)

    def test_rejects_inline_data(self, site_config):
        assert not is_valid_asset("data:image/png;base64,/wp-content/iVBOR", site_config)

    def test_rejects_other_paths(self, site_config):
        assert not is_valid_asset("https://site.com/images/a.jpg", site_config)

    def test_rejects_references_already_on_the_cdn(self, site_config):
        assert not is_valid_asset(f"{CDN}/a.jpg?width=auto", site_config)


class TestRewriteReference:
    def test_sized_from_filename(self, bare_config):
        result = rewrite_reference(bare_config, "https://site.com/wp-content/uploads/a-150x150.png")

        assert result == f"{CDN}/a.png?width=150&height=150"

    def test_without_inference_keeps_the_suffix(self, bare_config):
        result = rewrite_reference(bare_config, "https://site.com/wp-content/uploads/a-150x150.png", infer=False)

        assert result == f"{CDN}/a-150x150.png?width=auto&height=auto"

    def test_malformed_reference_is_left_alone(self, bare_config):
        assert rewrite_reference(bare_config, "https://site.com/wp-content/uploads/a b.png") is None

    def test_invalid_reference_is_left_alone(self, bare_config):
        assert rewrite_reference(bare_config, "https://site.com/a.png") is None


class TestRewriteDescriptorList:
    def test_each_entry_gets_its_own_size(self, site_config):
        value = (
            "https://site.com/wp-content/uploads/a-300x200.jpg 300w, "
            "https://site.com/wp-content/uploads/a.jpg 1024w"
        )

        result = rewrite_descriptor_list(site_config, value)

        assert result == (
            f"{CDN}/a.jpg?width=300&height=200&quality=85&crop=300,200&crop_gravity=center 300w, "
            f"{CDN}/a.jpg?width=1024&height=auto&quality=85 1024w"
        )

    def test_malformed_entry_is_kept_verbatim(self, bare_config):
        value = (
            "https://site.com/wp-content/uploads/a.jpg 1x,"
            "https://site.com/wp-content/uploads/b.jpg,"
            "https://site.com/wp-content/uploads/c.jpg 2x"
        )

        result = rewrite_descriptor_list(bare_config, value)

        assert result == (
            f"{CDN}/a.jpg?width=auto&height=auto 1x, "
            "https://site.com/wp-content/uploads/b.jpg, "
            f"{CDN}/c.jpg?width=auto&height=auto 2x"
        )

    def test_entry_with_extra_token_keeps_its_position(self, bare_config):
        value = (
            "https://site.com/wp-content/uploads/a.jpg 100w, "
            "https://site.com/wp-content/uploads/b.jpg 200w extra, "
            "https://site.com/wp-content/uploads/c.jpg 300w"
        )

        result = rewrite_descriptor_list(bare_config, value)

        assert result == (
            f"{CDN}/a.jpg?width=100&height=auto 100w, "
            "https://site.com/wp-content/uploads/b.jpg 200w extra, "
            f"{CDN}/c.jpg?width=300&height=auto 300w"
        )

    def test_foreign_entries_are_kept(self, bare_config):
        value = "https://other.com/a.jpg 1x, https://site.com/wp-content/uploads/a.jpg 2x"

        result = rewrite_descriptor_list(bare_config, value)

        assert result == f"https://other.com/a.jpg 1x, {CDN}/a.jpg?width=auto&height=auto 2x"

    def test_nothing_to_rewrite(self, bare_config):
        assert rewrite_descriptor_list(bare_config, None) is None
        assert rewrite_descriptor_list(bare_config, "https://other.com/a.jpg 1x") is None
        assert rewrite_descriptor_list(bare_config, f"{CDN}/a.jpg?width=auto 1x") is None


class TestRewriteAttributes:
    def test_lazy_load_attributes_share_explicit_size(self, bare_config):
        element = make_img(
            data_lazy_src="https://site.com/wp-content/uploads/a-10x10.jpg",
            data_original="https://site.com/wp-content/uploads/b.jpg",
        )

        changed = rewrite_attributes(
            element, bare_config, ("src", "data-lazy-src", "data-original"), width="40", height="30"
        )

        assert changed == 2
        assert element.get_attribute("data-lazy-src") == f"{CDN}/a.jpg?width=40&height=30"
        assert element.get_attribute("data-original") == f"{CDN}/b.jpg?width=40&height=30"
        assert not element.has_attribute("src")

    def test_untouched_element_is_not_modified(self, bare_config):
        element = make_img(src="https://other.com/a.jpg")

        assert rewrite_attributes(element, bare_config, ("src",)) == 0
        assert element.modified is False

    def test_candidate_lists(self, bare_config):
        element = make_img(data_srcset="https://site.com/wp-content/uploads/a.jpg 640w")

        assert rewrite_candidate_lists(element, bare_config) == 1
        assert element.get_attribute("data-srcset") == f"{CDN}/a.jpg?width=640&height=auto 640w"
