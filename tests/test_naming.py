from listing_relay.core.models import Artifact, Item
from listing_relay.services.naming import (
    delivery_title,
    local_filename,
    safe_publish_name,
    sanitize_stem,
    transliterate,
    url_digest,
)


def _item(title="Desert Island", item_id="42"):
    return Item(id=item_id, title=title, url=f"https://x/index.php?mid={item_id}")


def test_transliterate_keeps_capitalisation():
    assert transliterate("Щука") == "Schuka"
    assert transliterate("остров") == "ostrov"
    assert transliterate("Їжак") == "Yizhak"


def test_sanitize_stem_collapses_and_trims_placeholders():
    assert sanitize_stem("  hello   world!! ") == "hello_world"
    assert sanitize_stem("__a__b__") == "a_b"


def test_safe_publish_name_cyrillic_title():
    assert safe_publish_name("Остров - Island (v2)!!.map") == "Ostrov_-_Island_v2.map"


def test_safe_publish_name_only_uses_basename():
    assert safe_publish_name("/tmp/out/Карта #1!.map") == "Karta_1.map"


def test_safe_publish_name_empty_stem_falls_back_to_timestamp():
    assert safe_publish_name("!!!.map", clock=lambda: 1700000000.0) == "item_1700000000000.map"


def test_safe_publish_name_result_is_always_legal():
    for raw in ["a b.c d", "日本語.map", "..map", "x.тест"]:
        name = safe_publish_name(raw, clock=lambda: 1.0)
        assert name
        assert all(ch.isascii() and (ch.isalnum() or ch in "._-") for ch in name)


def test_delivery_title_joins_item_and_file_name():
    artifact = Artifact(fetch_url="https://x/v1.map", name="v1.map")
    assert delivery_title(_item(), artifact) == "Desert Island - v1.map"
    assert delivery_title(_item(), Artifact(fetch_url="https://x/y")) == "Desert Island"


def test_local_filename_uses_id_title_digest_and_url_extension():
    url = "https://x/files/v1.map"
    artifact = Artifact(fetch_url=url, name="v1.map")
    digest = url_digest(url)
    assert len(digest) == 8
    assert local_filename(_item(), artifact) == f"42_Desert Island - v1_{digest}.map"


def test_local_filename_differs_for_same_name_different_urls():
    first = Artifact(fetch_url="https://x/v1/download?id=1", name="island.map")
    second = Artifact(fetch_url="https://x/v2/download?id=2", name="island.map")
    assert local_filename(_item(), first) != local_filename(_item(), second)
    assert local_filename(_item(), first) == local_filename(_item(), first)


def test_local_filename_without_title():
    artifact = Artifact(fetch_url="https://x/a.map")
    assert local_filename(_item(title=""), artifact) == f"42_{url_digest('https://x/a.map')}.map"


def test_local_filename_truncates_and_strips_illegal_chars():
    artifact = Artifact(fetch_url="https://x/download.php?id=7")
    name = local_filename(_item(title='A/B:C "' + "x" * 80), artifact)
    assert name.startswith("42_ABC ")
    assert name.endswith(".php")
    assert "/" not in name and ":" not in name
    assert len(name) <= len("42_") + 50 + len("_") + 8 + len(".php")
