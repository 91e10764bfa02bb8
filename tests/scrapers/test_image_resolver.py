import unittest
from unittest.mock import MagicMock

import requests

from lumina.scrapers.image_resolver import (
    extract_feed_image,
    extract_og_image,
    resolve_page_image,
)


class TestExtractFeedImage(unittest.TestCase):
    def test_media_content_first(self):
        entry = {
            "media_content": [{"url": "https://cdn.test/media.jpg", "medium": "image"}],
            "enclosures": [{"href": "https://cdn.test/enc.jpg", "type": "image/jpeg"}],
        }
        self.assertEqual(extract_feed_image(entry), "https://cdn.test/media.jpg")

    def test_video_media_is_skipped(self):
        entry = {
            "media_content": [{"url": "https://cdn.test/clip.mp4", "type": "video/mp4"}],
            "enclosures": [{"href": "https://cdn.test/enc.jpg", "type": "image/jpeg"}],
        }
        self.assertEqual(extract_feed_image(entry), "https://cdn.test/enc.jpg")

    def test_non_image_enclosure_is_skipped(self):
        entry = {
            "enclosures": [{"href": "https://cdn.test/ep.mp3", "type": "audio/mpeg"}],
            "itunes_image": {"href": "https://cdn.test/cover.png"},
        }
        self.assertEqual(extract_feed_image(entry), "https://cdn.test/cover.png")

    def test_thumbnail_then_image_field(self):
        self.assertEqual(
            extract_feed_image({"media_thumbnail": [{"url": "https://cdn.test/t.jpg"}]}),
            "https://cdn.test/t.jpg",
        )
        self.assertEqual(
            extract_feed_image({"image": {"href": "https://cdn.test/i.jpg"}}),
            "https://cdn.test/i.jpg",
        )

    def test_first_img_in_html_is_made_absolute(self):
        entry = {
            "link": "https://site.test/news/story",
            "summary": '<p>Text</p><img src="/img/a.jpg"><img src="/img/b.jpg">',
        }
        self.assertEqual(extract_feed_image(entry), "https://site.test/img/a.jpg")

    def test_nothing_found(self):
        self.assertIsNone(extract_feed_image({"summary": "<p>no image</p>"}))


class TestPageImage(unittest.TestCase):
    def test_extract_og_image_relative(self):
        html = '<html><head><meta property="og:image" content="/share.png"></head></html>'
        self.assertEqual(extract_og_image(html, "https://site.test/a/b"), "https://site.test/share.png")

    def test_extract_og_image_name_attribute(self):
        html = '<meta name="og:image:secure_url" content="https://cdn.test/x.png">'
        self.assertEqual(extract_og_image(html, "https://site.test"), "https://cdn.test/x.png")

    def test_resolve_page_image_uses_timeout_and_user_agent(self):
        session = MagicMock()
        resp = MagicMock()
        resp.text = '<meta property="og:image" content="https://cdn.test/og.jpg">'
        resp.url = "https://site.test/story"
        session.get.return_value = resp

        url = resolve_page_image("https://site.test/story", timeout=5.0, session=session, user_agent="Lumina")

        self.assertEqual(url, "https://cdn.test/og.jpg")
        kwargs = session.get.call_args.kwargs
        self.assertEqual(kwargs["timeout"], 5.0)
        self.assertEqual(kwargs["headers"], {"User-Agent": "Lumina"})

    def test_timeout_returns_none(self):
        session = MagicMock()
        session.get.side_effect = requests.Timeout("slow")
        self.assertIsNone(resolve_page_image("https://site.test/story", session=session))

    def test_http_error_returns_none(self):
        session = MagicMock()
        resp = MagicMock()
        resp.raise_for_status.side_effect = requests.HTTPError("404")
        session.get.return_value = resp
        self.assertIsNone(resolve_page_image("https://site.test/story", session=session))

    def test_empty_url(self):
        self.assertIsNone(resolve_page_image(""))


if __name__ == "__main__":
    unittest.main()
