from __future__ import annotations

import unittest

from paths import (
    PathTable,
    UrlKind,
    clean_url,
    extension_for_mime,
    is_same_origin,
    local_path_for,
    relative_link,
    resolve_url,
)


class LocalPathTest(unittest.TestCase):
    def test_page_without_extension_gets_html(self) -> None:
        self.assertEqual(
            local_path_for("https://example.com/blog/post", UrlKind.PAGE),
            "pages/example.com/blog/post.html",
        )

    def test_page_trailing_slash_becomes_index(self) -> None:
        self.assertEqual(
            local_path_for("https://example.com/about/", UrlKind.PAGE),
            "pages/example.com/about/index.html",
        )
        self.assertEqual(
            local_path_for("https://example.com/", UrlKind.PAGE),
            "pages/example.com/index.html",
        )

    def test_page_keeps_existing_extension(self) -> None:
        self.assertEqual(
            local_path_for("https://example.com/contact.php", UrlKind.PAGE),
            "pages/example.com/contact.php",
        )

    def test_asset_paths_are_namespaced_by_host(self) -> None:
        self.assertEqual(
            local_path_for("https://cdn.example.org/img/logo.png", UrlKind.ASSET),
            "assets/cdn.example.org/img/logo.png",
        )
        self.assertEqual(
            local_path_for("https://example.com/fonts/", UrlKind.ASSET),
            "assets/example.com/fonts/index",
        )

    def test_asset_without_extension_is_left_alone(self) -> None:
        self.assertEqual(
            local_path_for("https://example.com/api/font", UrlKind.ASSET),
            "assets/example.com/api/font",
        )

    def test_query_gets_stable_suffix(self) -> None:
        first = local_path_for("https://example.com/style.css?v=1", UrlKind.ASSET)
        second = local_path_for("https://example.com/style.css?v=2", UrlKind.ASSET)
        self.assertNotEqual(first, second)
        self.assertTrue(first.startswith("assets/example.com/style__q_"))
        self.assertTrue(first.endswith(".css"))
        self.assertEqual(first, local_path_for("https://example.com/style.css?v=1", UrlKind.ASSET))

    def test_unsafe_characters_and_port(self) -> None:
        self.assertEqual(
            local_path_for("http://example.com:8080/my%20file.png", UrlKind.ASSET),
            "assets/example.com_8080/my_file.png",
        )


class PathTableTest(unittest.TestCase):
    def test_register_is_idempotent(self) -> None:
        table = PathTable(UrlKind.PAGE)
        first = table.register("https://example.com/a")
        for _ in range(3):
            self.assertEqual(table.register("https://example.com/a"), first)
        self.assertEqual(len(table), 1)

    def test_extend_applies_once(self) -> None:
        table = PathTable(UrlKind.ASSET)
        url = "https://example.com/font"
        table.register(url)
        self.assertEqual(table.extend(url, "font/woff2"), "assets/example.com/font.woff2")
        self.assertEqual(table.extend(url, "text/css"), "assets/example.com/font.woff2")
        self.assertEqual(table.get(url), "assets/example.com/font.woff2")

    def test_extend_skips_paths_with_extension(self) -> None:
        table = PathTable(UrlKind.ASSET)
        url = "https://example.com/app.js"
        self.assertEqual(table.extend(url, "text/css"), "assets/example.com/app.js")

    def test_consumed_path_is_frozen(self) -> None:
        table = PathTable(UrlKind.ASSET)
        url = "https://example.com/logo"
        table.register(url)
        self.assertEqual(table.consume(url), "assets/example.com/logo")
        self.assertEqual(table.extend(url, "image/png"), "assets/example.com/logo")
        self.assertIsNone(table.consume("https://example.com/other"))


class UrlHelpersTest(unittest.TestCase):
    def test_relative_link_from_nested_page(self) -> None:
        self.assertEqual(
            relative_link("pages/example.com/blog/post.html", "assets/example.com/img/logo.png"),
            "../../../assets/example.com/img/logo.png",
        )

    def test_relative_link_between_siblings(self) -> None:
        self.assertEqual(
            relative_link("pages/example.com/index.html", "pages/example.com/about.html"),
            "about.html",
        )

    def test_resolve_url_skips_non_fetchable(self) -> None:
        base = "https://example.com/blog/"
        for value in ("", "#top", "mailto:a@b.c", "javascript:void(0)", "data:image/png;base64,AA", "ftp://x/y"):
            with self.subTest(value=value):
                self.assertIsNone(resolve_url(base, value))

    def test_resolve_url_drops_fragment_and_keeps_query(self) -> None:
        self.assertEqual(
            resolve_url("https://example.com/blog/", "../a.css?v=3#x"),
            "https://example.com/a.css?v=3",
        )

    def test_clean_url_adds_root_path(self) -> None:
        self.assertEqual(clean_url("https://example.com"), "https://example.com/")

    def test_same_origin_uses_scheme_host_and_port(self) -> None:
        self.assertTrue(is_same_origin("https://example.com/", "https://EXAMPLE.com:443/x"))
        self.assertFalse(is_same_origin("https://example.com/", "http://example.com/"))
        self.assertFalse(is_same_origin("https://example.com/", "https://www.example.com/"))

    def test_extension_for_mime(self) -> None:
        self.assertEqual(extension_for_mime("text/css; charset=utf-8"), ".css")
        self.assertEqual(extension_for_mime("application/octet-stream"), "")


if __name__ == "__main__":
    unittest.main(verbosity=2)
