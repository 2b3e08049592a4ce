from markupsafe import Markup

from portail.site.models import AdPixels
from portail.tracking.pixels import (
    FACEBOOK_MARKER,
    GOOGLE_MARKER,
    TIKTOK_MARKER,
    PixelInjector,
    head_snippets,
)


def test_only_configured_pixels_are_injected():
    injector = PixelInjector()
    added = injector.inject(AdPixels(google_tag_id="G-ABC123", tiktok_pixel_id="CTIK42"))
    assert [s.marker_id for s in added] == [GOOGLE_MARKER, TIKTOK_MARKER]
    assert "gtag/js?id=G-ABC123" in added[0].html
    assert isinstance(added[0].html, Markup)


def test_marker_is_never_injected_twice():
    injector = PixelInjector()
    injector.inject(AdPixels(facebook_pixel_id="123456"))
    # Nouvelle publication des paramètres avec un autre identifiant: ignorée
    assert injector.inject(AdPixels(facebook_pixel_id="999999")) == []
    assert injector.injected == {FACEBOOK_MARKER}


def test_invalid_or_blank_ids_are_skipped():
    injector = PixelInjector()
    added = injector.inject(AdPixels(google_tag_id="   ", snapchat_pixel_id="x'</script><script>alert(1)"))
    assert added == []
    assert injector.inject(None) == []


def test_head_snippets():
    html = head_snippets(AdPixels(google_tag_id="G-1", facebook_pixel_id="42"))
    assert 'id="google-gtag"' in html
    assert "fbq('init', '42')" in html
    assert head_snippets(AdPixels()) == ""
