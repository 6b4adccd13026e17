"""Tests for mosaic.plugins.storage and mosaic.persistence."""

from __future__ import annotations

import logging

from mosaic.models import InstalledPluginRecord, PackageKind
from mosaic.persistence import read_json, write_json
from mosaic.plugins.storage import InstalledPluginStore, PackageStore, slug


REPO_A = "https://repo-a.example/repo.json"
REPO_B = "https://repo-b.example/repo.json"


def _record(name: str = "Example", repo: str = REPO_A, version: int = 1, enabled: bool = True):
    return InstalledPluginRecord(
        internal_name=name,
        url=f"https://pkg.example/{name}.pkg",
        version=version,
        repository_url=repo,
        enabled=enabled,
        kind=PackageKind.SCRIPTED_SOURCE,
    )


class TestPersistence:
    """Tests for the JSON helpers."""

    def test_missing_file_returns_default(self, tmp_path):
        assert read_json(tmp_path / "nope.json", []) == []

    def test_write_then_read(self, tmp_path):
        path = tmp_path / "nested" / "doc.json"
        write_json(path, {"a": 1})
        assert read_json(path, None) == {"a": 1}
        assert not list(path.parent.glob("*.tmp"))

    def test_corrupt_file_returns_default(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("{not json", encoding="utf-8")
        assert read_json(path, {"fallback": True}) == {"fallback": True}

    def test_corrupt_file_logged(self, tmp_path, caplog):
        path = tmp_path / "bad.json"
        path.write_text("{not json", encoding="utf-8")
        with caplog.at_level(logging.WARNING, logger="mosaic.persistence"):
            read_json(path, [])
        assert f"Failed to read {path}" in caplog.text


class TestSlug:
    """Tests for filesystem-safe names."""

    def test_safe_characters_only(self):
        value = slug("https://repo.example/a b?c")
        assert all(c.isalnum() or c == "_" for c in value)

    def test_deterministic(self):
        assert slug("abc") == slug("abc")

    def test_similar_values_do_not_collide(self):
        assert slug("a/b") != slug("a_b")


class TestPackageStore:
    """Tests for cached package bytes."""

    def test_save_read_delete(self, tmp_path):
        store = PackageStore(tmp_path)
        path = store.save("Example", REPO_A, b"payload")

        assert path.is_file()
        assert path.suffix == ".pkg"
        assert store.exists("Example", REPO_A)
        assert store.read("Example", REPO_A) == b"payload"

        assert store.delete("Example", REPO_A) is True
        assert store.read("Example", REPO_A) is None
        assert store.delete("Example", REPO_A) is False

    def test_same_id_different_origin(self, tmp_path):
        store = PackageStore(tmp_path)
        store.save("Example", REPO_A, b"a")
        store.save("Example", REPO_B, b"b")

        assert store.read("Example", REPO_A) == b"a"
        assert store.read("Example", REPO_B) == b"b"

    def test_layout_is_origin_then_id(self, tmp_path):
        store = PackageStore(tmp_path)
        path = store.path_for("Example", REPO_A)
        assert path.parent.name == slug(REPO_A)
        assert path.name == f"{slug('Example')}.pkg"


class TestInstalledPluginStore:
    """Tests for installed-plugin records."""

    def test_empty(self, tmp_path):
        store = InstalledPluginStore(tmp_path / "installed.json")
        assert store.all() == []
        assert store.get("Example") is None

    def test_upsert_replaces_same_key(self, tmp_path):
        store = InstalledPluginStore(tmp_path / "installed.json")
        store.upsert(_record(version=1))
        store.upsert(_record(version=2))

        records = store.all()
        assert len(records) == 1
        assert records[0].version == 2

    def test_same_name_different_repositories(self, tmp_path):
        store = InstalledPluginStore(tmp_path / "installed.json")
        store.upsert(_record(repo=REPO_A))
        store.upsert(_record(repo=REPO_B, version=7))

        assert len(store.all()) == 2
        assert store.get("Example", REPO_B).version == 7

    def test_activate_disables_other_repositories(self, tmp_path):
        store = InstalledPluginStore(tmp_path / "installed.json")
        store.activate(_record(repo=REPO_A))
        store.activate(_record(repo=REPO_B, version=7))

        enabled = {r.repository_url: r.enabled for r in store.all()}
        assert enabled == {REPO_A: False, REPO_B: True}
        assert store.get("Example").repository_url == REPO_B

    def test_get_prefers_enabled_record(self, tmp_path):
        store = InstalledPluginStore(tmp_path / "installed.json")
        store.upsert(_record(repo=REPO_A))
        store.upsert(_record(repo=REPO_B, enabled=False))

        assert store.get("Example").repository_url == REPO_A

    def test_persists_across_instances(self, tmp_path):
        InstalledPluginStore(tmp_path / "installed.json").upsert(_record())
        record = InstalledPluginStore(tmp_path / "installed.json").get("Example")
        assert record is not None
        assert record.kind is PackageKind.SCRIPTED_SOURCE

    def test_set_enabled(self, tmp_path):
        store = InstalledPluginStore(tmp_path / "installed.json")
        store.upsert(_record())

        assert store.set_enabled("Example", False) is True
        assert store.get("Example").enabled is False
        assert store.set_enabled("Ghost", False) is False

    def test_remove(self, tmp_path):
        store = InstalledPluginStore(tmp_path / "installed.json")
        store.upsert(_record(repo=REPO_A))
        store.upsert(_record(repo=REPO_B))

        removed = store.remove("Example", REPO_A)
        assert [r.repository_url for r in removed] == [REPO_A]
        assert [r.repository_url for r in store.all()] == [REPO_B]

    def test_malformed_records_skipped(self, tmp_path):
        path = tmp_path / "installed.json"
        write_json(path, [{"internal_name": "x"}, _record().model_dump(mode="json")])
        assert [r.internal_name for r in InstalledPluginStore(path).all()] == ["Example"]
