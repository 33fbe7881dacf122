import json
import os
import unittest
from datetime import datetime, timezone
from xml.etree import ElementTree as ET

from fakes import FIXTURES
from feedgenie.contracts.feed_contract import validate_feed_json
from feedgenie.errors import ParseError
from feedgenie.feeds.models import FeedItem
from feedgenie.feeds.parser import parse_feed
from feedgenie.scraping.scraper import ScrapedPage, parse_page
from feedgenie.synthesis.generator import ATOM_NS, CONTENT_NS, GENERATOR, synthesize

PAGE = "https://example.com/blog"


def _page(items=None):
    if items is None:
        items = (
            FeedItem(
                title="First post title",
                link="https://example.com/posts/first",
                content="Body of the first post.",
                published_at=datetime(2024, 3, 1, 8, 0, tzinfo=timezone.utc),
                thumbnail="https://example.com/img/first.png",
            ),
            FeedItem(title="Second post title", link="https://example.com/posts/second"),
        )
    return ScrapedPage(
        url=PAGE,
        title="Example Blog",
        description="Notes on building things",
        site_name="Example",
        favicon="https://example.com/favicon.ico",
        items=tuple(items),
    )


class TestSynthesize(unittest.TestCase):
    def setUp(self):
        self.result = synthesize(PAGE, _page())
        self.root = ET.fromstring(self.result.rss_xml.encode("utf-8"))
        self.channel = self.root.find("channel")

    def test_channel_metadata(self):
        self.assertEqual(self.root.tag, "rss")
        self.assertEqual(self.root.get("version"), "2.0")
        self.assertEqual(self.channel.findtext("title"), "Example Blog")
        self.assertEqual(self.channel.findtext("link"), PAGE)
        self.assertEqual(self.channel.findtext("description"), "Notes on building things")
        self.assertEqual(self.channel.findtext("language"), "en")
        self.assertEqual(self.channel.findtext("copyright"), "Content from Example")
        self.assertEqual(self.channel.findtext("generator"), GENERATOR)
        self.assertTrue(self.channel.findtext("lastBuildDate").endswith("GMT"))
        self.assertEqual(self.channel.find("image").findtext("url"), "https://example.com/favicon.ico")

    def test_self_link(self):
        self_link = self.channel.find(f"{{{ATOM_NS}}}link")
        self.assertEqual(self_link.get("href"), "https://example.com/blog/feed")
        self.assertEqual(self_link.get("rel"), "self")

    def test_items(self):
        items = self.channel.findall("item")
        self.assertEqual(len(items), 2)

        first, second = items
        self.assertEqual(first.findtext("pubDate"), "Fri, 01 Mar 2024 08:00:00 GMT")
        self.assertEqual(first.findtext("description"), "Body of the first post.")
        self.assertEqual(first.findtext(f"{{{CONTENT_NS}}}encoded"), "Body of the first post.")
        enclosure = first.find("enclosure")
        self.assertEqual(enclosure.get("url"), "https://example.com/img/first.png")
        self.assertEqual(enclosure.get("type"), "image/png")

        # no content: description falls back to the title; no date: defaults to now
        self.assertEqual(second.findtext("description"), "Second post title")
        self.assertIsNotNone(second.findtext("pubDate"))
        self.assertIsNone(second.find(f"{{{CONTENT_NS}}}encoded"))
        self.assertEqual(second.findtext("guid"), "https://example.com/posts/second")

    def test_json_projection_matches(self):
        data = self.result.json_feed
        self.assertEqual(validate_feed_json(data), [])
        self.assertEqual(data["title"], "Example Blog")
        self.assertEqual(data["language"], "en")
        self.assertEqual([it["link"] for it in data["items"]], ["https://example.com/posts/first", "https://example.com/posts/second"])
        for item in data["items"]:
            self.assertEqual(item["guid"], item["link"])
            self.assertIsNotNone(item["pubDate"])
            self.assertLessEqual(len(item["contentSnippet"]), 200)
        self.assertEqual(data["items"][1]["content"], "")
        self.assertEqual(self.result.feed.to_dict()["items"], data["items"])

    def test_generated_xml_parses_as_feed(self):
        feed = parse_feed(self.result.rss_xml.encode("utf-8"), PAGE + "/feed")
        self.assertEqual(feed.title, "Example Blog")
        self.assertEqual(len(feed.items), 2)
        self.assertEqual(feed.items[0].thumbnail, "https://example.com/img/first.png")

    def test_zero_items_is_valid(self):
        result = synthesize(PAGE, _page(items=()))
        root = ET.fromstring(result.rss_xml.encode("utf-8"))
        self.assertIsNotNone(root.find("channel"))
        self.assertEqual(root.find("channel").findall("item"), [])
        self.assertEqual(result.json_feed["items"], [])

    def test_defaults_for_blank_page_metadata(self):
        page = ScrapedPage(url=PAGE, title="", items=())
        result = synthesize(PAGE, page)
        self.assertEqual(result.feed.title, "Generated Feed")
        self.assertEqual(result.feed.description, f"Auto-generated RSS feed for {PAGE}")
        root = ET.fromstring(result.rss_xml.encode("utf-8"))
        self.assertEqual(root.find("channel").findtext("copyright"), "Content from example.com")

    def test_text_is_escaped(self):
        page = _page(items=(FeedItem(title="Fish & <Chips>", link="https://example.com/f?a=1&b=2"),))
        result = synthesize(PAGE, page)
        root = ET.fromstring(result.rss_xml.encode("utf-8"))
        item = root.find("channel").find("item")
        self.assertEqual(item.findtext("title"), "Fish & <Chips>")
        self.assertEqual(item.findtext("link"), "https://example.com/f?a=1&b=2")

    def test_control_characters_are_dropped(self):
        html = b'<article><h2><a href="/p">Hello World title</a></h2><p>Body\x08text here\x1f</p></article>'
        page = parse_page(html, PAGE)
        result = synthesize(PAGE, page)
        root = ET.fromstring(result.rss_xml.encode("utf-8"))
        item = root.find("channel").find("item")
        self.assertEqual(item.findtext("description"), "Bodytext here")
        self.assertEqual(item.findtext(f"{{{CONTENT_NS}}}encoded"), "Bodytext here")

    def test_control_characters_in_attributes_are_dropped(self):
        page = _page(items=(FeedItem(title="Pic", link="https://example.com/p", thumbnail="https://example.com/a\x0bb.png"),))
        root = ET.fromstring(synthesize(PAGE, page).rss_xml.encode("utf-8"))
        self.assertEqual(root.find("channel").find("item").find("enclosure").get("url"), "https://example.com/ab.png")


class TestSynthesizeFromMapping(unittest.TestCase):
    def _sample(self):
        with open(os.path.join(FIXTURES, "scraped_page_sample.json"), "r", encoding="utf-8") as f:
            return json.load(f)

    def test_accepts_valid_mapping(self):
        result = synthesize(PAGE, self._sample())
        self.assertEqual(result.feed.title, "Example Blog")
        self.assertEqual(len(result.feed.items), 2)
        self.assertEqual(result.feed.items[0].published_at, datetime(2024, 3, 1, 8, 0, tzinfo=timezone.utc))

    def test_rejects_malformed_mapping(self):
        payload = self._sample()
        del payload["items"][0]["link"]
        with self.assertRaises(ParseError) as ctx:
            synthesize(PAGE, payload)
        self.assertIn("items.0", str(ctx.exception))

    def test_rejects_other_types(self):
        with self.assertRaises(TypeError):
            synthesize(PAGE, ["not", "a", "page"])


if __name__ == "__main__":
    unittest.main()
