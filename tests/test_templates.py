from __future__ import annotations

import pytest

from asyshare.server.filehandler import DirectoryEntry
from asyshare.templates import TEMPLATE_NAMES, render


def test_listing_escapes_names_and_links() -> None:
    entries = [DirectoryEntry("<b>&bold.txt", "/sub/%3Cb%3E%26bold.txt")]
    html = render("listing", {"requestPath": "/sub", "entries": entries}).decode("utf-8")
    assert "&lt;b&gt;&amp;bold.txt" in html
    assert "<b>&bold" not in html
    assert 'href="/sub/%3Cb%3E%26bold.txt"' in html


def test_listing_links_to_parent_outside_root() -> None:
    root = render("listing", {"requestPath": "/", "entries": []}).decode("utf-8")
    nested = render("listing", {"requestPath": "/a/b", "entries": []}).decode("utf-8")
    assert ">../<" not in root
    assert '<a href="/a">../</a>' in nested
    assert 'action="/a/b/upload"' in nested


@pytest.mark.parametrize("name, code", [("notFound", "404"), ("serverError", "500")])
def test_error_pages(name: str, code: str) -> None:
    html = render(name).decode("utf-8")
    assert "<h1>%s</h1>" % code in html


def test_every_render_is_fresh() -> None:
    first = render("listing", {"requestPath": "/", "entries": [DirectoryEntry("a", "/a")]})
    second = render("listing", {"requestPath": "/", "entries": []})
    assert b"/a" in first
    assert b'href="/a"' not in second


def test_known_templates() -> None:
    assert set(TEMPLATE_NAMES) == {"listing", "notFound", "serverError"}
    with pytest.raises(KeyError):
        render("missing")
