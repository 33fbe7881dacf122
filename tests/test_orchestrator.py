import unittest
from unittest import mock

from fakes import FakeClock, fixture_bytes, respond_by_url
from feedgenie.config import Settings
from feedgenie.errors import FetchError, ResolutionError, UrlValidationError
from feedgenie.feeds.cache import FeedCache
from feedgenie.resolution.orchestrator import DISCOVERED, GENERATED, FeedResolver

SITE = "https://example.com"
NO_FEED_LINKS = b"<html><head><title>Plain</title></head><body></body></html>"


class OrchestratorTestCase(unittest.TestCase):
    def setUp(self):
        self.cache = FeedCache(timer=FakeClock())
        self.resolver = FeedResolver(cache=self.cache, settings=Settings())

        patches = {
            "fetch_html": mock.patch("feedgenie.fetching.client.fetch_html"),
            "fetch_direct": mock.patch("feedgenie.fetching.client.fetch_direct"),
            "head": mock.patch("feedgenie.fetching.client.head"),
            "fetch_prefix": mock.patch("feedgenie.fetching.client.fetch_prefix"),
        }
        self.mocks = {}
        for name, patcher in patches.items():
            self.mocks[name] = patcher.start()
            self.addCleanup(patcher.stop)
        # conventional path probes all fail unless a test says otherwise
        self.mocks["head"].side_effect = FetchError(SITE, "http_404", 404)
        self.mocks["fetch_prefix"].side_effect = FetchError(SITE, "http_404", 404)


class TestResolution(OrchestratorTestCase):
    def test_private_ip_rejected_without_network(self):
        with self.assertRaises(UrlValidationError) as ctx:
            self.resolver.resolve("http://192.168.1.1/feed")
        self.assertEqual(ctx.exception.code, "private_ip")
        for m in self.mocks.values():
            m.assert_not_called()

    def test_discovered_feed(self):
        page = b'<html><head><link rel="alternate" type="application/rss+xml" href="/feed"></head></html>'
        self.mocks["fetch_html"].return_value = page
        self.mocks["fetch_direct"].side_effect = respond_by_url({SITE + "/feed": fixture_bytes("rss_sample.xml")})

        result = self.resolver.resolve(SITE)

        self.assertEqual(result.state, DISCOVERED)
        self.assertEqual(result.feed_url, "https://example.com/feed")
        self.assertIsNone(result.rss_xml)
        self.assertEqual(result.feed.title, "Example Engineering")
        self.assertEqual(result.discovery.method, "link_tag")
        data = result.to_dict()
        self.assertEqual(data["source"], "discovered")
        self.assertEqual(data["feedUrl"], "https://example.com/feed")
        self.assertNotIn("rssXml", data)

    def test_discovered_feed_is_cached(self):
        page = b'<link type="application/rss+xml" href="/feed">'
        self.mocks["fetch_html"].return_value = page
        self.mocks["fetch_direct"].return_value = fixture_bytes("rss_sample.xml")

        self.resolver.resolve(SITE)
        second = self.resolver.resolve(SITE)

        self.assertEqual(self.mocks["fetch_direct"].call_count, 1)
        self.assertTrue(second.feed.from_cache)
        self.assertTrue(self.cache.contains(SITE + "/feed"))

    def test_generated_feed_when_no_feed_exists(self):
        self.mocks["fetch_html"].return_value = fixture_bytes("blog_page.html")

        result = self.resolver.resolve(SITE)

        self.assertEqual(result.state, GENERATED)
        self.assertIsNone(result.feed_url)
        self.assertEqual(result.discovery.status, "not_found")
        self.assertIn("<channel>", result.rss_xml)
        self.assertEqual(result.rss_xml.count("<item>"), 3)
        data = result.to_dict()
        self.assertEqual(data["source"], "generated")
        self.assertIsNone(data["feedUrl"])
        self.assertEqual(data["rssXml"], result.rss_xml)
        self.mocks["fetch_direct"].assert_not_called()

    def test_page_without_content_generates_empty_feed(self):
        self.mocks["fetch_html"].return_value = NO_FEED_LINKS

        result = self.resolver.resolve(SITE)

        self.assertEqual(result.state, GENERATED)
        self.assertEqual(result.feed.items, ())
        self.assertIn("<channel>", result.rss_xml)
        self.assertNotIn("<item>", result.rss_xml)

    def test_unfetchable_discovered_feed_falls_through_to_scrape(self):
        page = b'<link type="application/rss+xml" href="/feed">' + fixture_bytes("blog_page.html")
        self.mocks["fetch_html"].return_value = page
        self.mocks["fetch_direct"].side_effect = FetchError(SITE + "/feed", "http_500", 500)

        with self.assertLogs("feedgenie.resolution.orchestrator", level="WARNING") as logs:
            result = self.resolver.resolve(SITE)

        self.assertEqual(result.state, GENERATED)
        self.assertEqual(result.discovery.feed_url, SITE + "/feed")
        self.assertTrue(any("falling back to scrape" in line for line in logs.output))
        self.assertFalse(self.cache.contains(SITE + "/feed"))

    def test_unparseable_discovered_feed_falls_through_to_scrape(self):
        self.mocks["fetch_html"].return_value = b'<link type="application/rss+xml" href="/feed"><article><h2><a href="/x">Only article</a></h2></article>'
        self.mocks["fetch_direct"].return_value = b"<html>not a feed</html>"

        result = self.resolver.resolve(SITE)

        self.assertEqual(result.state, GENERATED)
        self.assertEqual([it.link for it in result.feed.items], ["https://example.com/x"])

    def test_scrape_failure_is_fatal(self):
        err = FetchError(SITE, "http_403", 403)
        self.mocks["fetch_html"].side_effect = err

        with self.assertRaises(ResolutionError) as ctx:
            self.resolver.resolve(SITE)
        self.assertIs(ctx.exception.last_error, err)
        self.assertIn("http_403", str(ctx.exception))


if __name__ == "__main__":
    unittest.main()
