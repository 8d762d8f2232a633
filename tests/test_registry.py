import pytest

from gatelink.errors import Conflict
from gatelink.storage import KeyedLock


def test_create_link_defaults(links, clock):
    link = links.create("https://example.com", "Example", link_id="demo")

    assert link.id == "demo"
    assert link.original_url == "https://example.com"
    assert link.title == "Example"
    assert link.views == 0
    assert link.active is True
    assert link.created_at == clock.now
    assert links.get("demo") == link


def test_create_link_generates_id(links):
    link = links.create("https://example.com", "Example")

    assert len(link.id) == 6
    assert link.id.isalnum()
    assert links.get(link.id) is not None


def test_create_link_rejects_taken_id(links):
    links.create("https://example.com", "First", link_id="demo")

    with pytest.raises(Conflict):
        links.create("https://other.example", "Second", link_id="demo")

    assert links.get("demo").original_url == "https://example.com"


def test_get_missing_link(links):
    assert links.get("nope") is None


def test_list_links(links):
    links.create("https://a.example", "A", link_id="a")
    links.create("https://b.example", "B", link_id="b")

    assert sorted(link.id for link in links.list()) == ["a", "b"]


def test_delete_link_is_idempotent(links):
    links.create("https://example.com", "Example", link_id="demo")

    links.delete("demo")
    links.delete("demo")

    assert links.get("demo") is None
    assert links.list() == []


def test_record_view(links):
    links.create("https://example.com", "Example", link_id="demo")

    links.record_view("demo")
    links.record_view("demo")
    links.record_view("missing")

    assert links.get("demo").views == 2


def test_ads_get_sequential_ids(ads):
    first = ads.create("landing_top", "<b>one</b>")
    second = ads.create("step2", "<b>two</b>")

    assert (first.id, second.id) == (1, 2)
    assert first.active and second.active
    assert [ad.id for ad in ads.list()] == [1, 2]


def test_list_active_skips_inactive_ads(ads, storage):
    active = ads.create("landing_top", "<b>on</b>")
    storage.add_ad("landing_top", "<b>off</b>", active=False)

    assert ads.list_active() == [active]
    assert len(ads.list()) == 2


def test_for_placement_returns_first_match(ads):
    ads.create("step2", "<b>a</b>")
    first = ads.create("step3", "<b>b</b>")
    ads.create("step3", "<b>c</b>")

    assert ads.for_placement("step3") == first
    assert ads.for_placement("video") is None


def test_delete_ad_is_idempotent(ads):
    ad = ads.create("step2", "<b>a</b>")

    ads.delete(ad.id)
    ads.delete(ad.id)

    assert ads.list() == []


def test_keyed_lock_forgets_released_keys():
    locks = KeyedLock()

    with locks.hold("a"):
        with locks.hold("b"):
            assert len(locks) == 2

    assert len(locks) == 0


def test_generated_id_redrawn_when_taken_after_check(links, storage, monkeypatch):
    links.create("https://example.com", "First", link_id="aaaaaa")
    drawn = iter(["aaaaaa", "bbbbbb"])
    monkeypatch.setattr("gatelink.registry.generate_link_id", lambda: next(drawn))
    # the existence check misses the taken id, as when another create wins the race
    monkeypatch.setattr(storage, "get_link", lambda link_id: None)

    link = links.create("https://example.com/second", "Second")

    assert link.id == "bbbbbb"
