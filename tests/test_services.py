from __future__ import annotations

import json
from pathlib import Path

import pytest
import yaml

from hostlists.errors import BuildIOError, DuplicateServiceId, InvalidServiceId, MissingServiceId
from hostlists.grouping import group_services
from hostlists.services import (
    apply_dynamic_rules,
    get_differences,
    read_distribution,
    read_source_fragments,
    reconcile,
    restore_removed_sources,
)


def test_source_wins_and_additions_are_merged() -> None:
    result = reconcile([{"id": 1, "v": "a"}], [{"id": 1, "v": "b"}, {"id": 2, "v": "c"}])

    assert result.merged == [{"id": 1, "v": "b"}, {"id": 2, "v": "c"}]
    assert result.diff.changed_ids == [1]
    assert result.diff.added_ids == [2]
    assert result.diff.removed == []
    assert result.restorations == []


def test_distribution_only_entity_is_restored() -> None:
    result = reconcile([{"id": 1}, {"id": 2}], [{"id": 1}])

    assert result.diff.removed == [2]
    assert [r.id for r in result.restorations] == [2]
    assert result.restorations[0].entity == {"id": 2}
    assert result.merged == [{"id": 1}, {"id": 2}]


def test_equal_entities_are_unchanged() -> None:
    diff = get_differences([{"id": "a", "rules": ["||a^"]}], [{"id": "a", "rules": ["||a^"]}])
    assert not diff
    assert diff.added == diff.removed == diff.changed == []


def test_changed_carries_before_and_after() -> None:
    diff = get_differences([{"id": "a", "rules": ["||a^"]}], [{"id": "a", "rules": ["||b^"]}])
    change = diff.changed[0]
    assert change.before == {"id": "a", "rules": ["||a^"]}
    assert change.after == {"id": "a", "rules": ["||b^"]}


def test_structural_comparison_is_deep() -> None:
    dist = [{"id": "a", "meta": {"tags": ["x", "y"]}}]
    assert get_differences(dist, [{"id": "a", "meta": {"tags": ["x", "y"]}}]).changed == []
    assert get_differences(dist, [{"id": "a", "meta": {"tags": ["y", "x"]}}]).changed_ids == ["a"]


def test_diff_is_order_independent() -> None:
    dist = [{"id": 1}, {"id": 2}, {"id": 3, "v": 1}]
    sources = [{"id": 3, "v": 2}, {"id": 4}, {"id": 1}]

    forward = get_differences(dist, sources)
    backward = get_differences(list(reversed(dist)), list(reversed(sources)))

    assert forward == backward
    assert forward.removed == [2]
    assert forward.added_ids == [4]
    assert forward.changed_ids == [3]


def test_entity_without_id_is_rejected() -> None:
    with pytest.raises(ValueError):
        reconcile([], [{"name": "nameless"}])


def test_read_distribution_flattens_grouped_catalog(tmp_path: Path) -> None:
    services = [{"id": "b", "group": "g"}, {"id": "a", "group": "g"}]
    path = tmp_path / "services.json"
    path.write_text(json.dumps(group_services(services)), encoding="utf-8")

    assert read_distribution(path) == [{"id": "a", "group": "g"}, {"id": "b", "group": "g"}]


def test_read_distribution_accepts_flat_layout(tmp_path: Path) -> None:
    path = tmp_path / "services.json"
    path.write_text(json.dumps({"blocked_services": [{"id": "x"}]}), encoding="utf-8")
    assert read_distribution(path) == [{"id": "x"}]


def test_read_distribution_missing_file(tmp_path: Path) -> None:
    assert read_distribution(tmp_path / "services.json") == []


def test_read_source_fragments(tmp_path: Path) -> None:
    (tmp_path / "a.yml").write_text("id: a\nrules:\n  - '||a.com^'\n", encoding="utf-8")
    (tmp_path / "group.yaml").write_text("- id: b\n- id: c\n", encoding="utf-8")
    (tmp_path / "d.json").write_text(json.dumps({"id": "d"}), encoding="utf-8")
    (tmp_path / "README.md").write_text("ignored", encoding="utf-8")

    entities = read_source_fragments(tmp_path)

    assert [e["id"] for e in entities] == ["a", "d", "b", "c"]
    assert entities[0]["rules"] == ["||a.com^"]


def test_read_source_fragments_rejects_scalars(tmp_path: Path) -> None:
    (tmp_path / "bad.yml").write_text("just a string\n", encoding="utf-8")
    with pytest.raises(BuildIOError):
        read_source_fragments(tmp_path)


def test_read_source_fragments_rejects_duplicate_ids(tmp_path: Path) -> None:
    (tmp_path / "a.yml").write_text("id: x\nname: First\n", encoding="utf-8")
    (tmp_path / "b.yml").write_text("id: x\nname: Second\n", encoding="utf-8")

    with pytest.raises(DuplicateServiceId) as excinfo:
        read_source_fragments(tmp_path)
    assert excinfo.value.service_id == "x"
    assert excinfo.value.locations == (tmp_path / "a.yml", tmp_path / "b.yml")


def test_reconcile_rejects_duplicate_ids() -> None:
    with pytest.raises(DuplicateServiceId):
        reconcile([], [{"id": "x", "name": "First"}, {"id": "x", "name": "Second"}])
    with pytest.raises(DuplicateServiceId):
        reconcile([{"id": "x"}, {"id": "x"}], [])


@pytest.mark.parametrize("service_id", ["../evil", "a/b", "..", ".hidden", ""])
def test_restoration_rejects_unsafe_ids(service_id: str) -> None:
    with pytest.raises(InvalidServiceId):
        reconcile([{"id": service_id}], [])


def test_restore_never_overwrites_existing_fragment(tmp_path: Path) -> None:
    existing = "- id: other\n- id: another\n"
    (tmp_path / "gone.yml").write_text(existing, encoding="utf-8")
    (tmp_path / "gone.restored-1.yml").write_text("id: older\n", encoding="utf-8")
    result = reconcile([{"id": "gone", "name": "Gone"}], [])

    written = restore_removed_sources(result.restorations, tmp_path)

    assert written == [tmp_path / "gone.restored-2.yml"]
    assert (tmp_path / "gone.yml").read_text(encoding="utf-8") == existing
    assert yaml.safe_load(written[0].read_text(encoding="utf-8")) == {"id": "gone", "name": "Gone"}


def test_restore_removed_sources_writes_yaml(tmp_path: Path) -> None:
    result = reconcile([{"id": "gone", "name": "Gone", "rules": ["||gone.com^"]}], [])

    written = restore_removed_sources(result.restorations, tmp_path)

    assert written == [tmp_path / "gone.yml"]
    assert yaml.safe_load(written[0].read_text(encoding="utf-8")) == {
        "id": "gone",
        "name": "Gone",
        "rules": ["||gone.com^"],
    }
    assert read_source_fragments(tmp_path) == [{"id": "gone", "name": "Gone", "rules": ["||gone.com^"]}]


def test_apply_dynamic_rules_replaces_rules() -> None:
    dist = [{"id": "mastodon", "rules": ["||old^"]}]
    merged = [{"id": "mastodon", "rules": ["||static^"]}, {"id": "other", "rules": []}]

    updated = apply_dynamic_rules(dist, merged, "mastodon", ["||a.social^"])

    assert updated[0] == {"id": "mastodon", "rules": ["||a.social^"]}
    assert updated[1] is merged[1]
    assert merged[0]["rules"] == ["||static^"]


def test_apply_dynamic_rules_requires_distribution_entry() -> None:
    with pytest.raises(MissingServiceId) as excinfo:
        apply_dynamic_rules([], [{"id": "mastodon"}], "mastodon", [])
    assert excinfo.value.service_id == "mastodon"
