"""Tests for hook reference parsing and the HookRegistry mutations."""

from __future__ import annotations

from devpanel.models.hook import HookSearch
from devpanel.repositories.settings_store import DuckDBSettingsStore
from devpanel.services.hook_registry import (
    NOT_FOUND_MESSAGE,
    UNCHANGED_MESSAGE,
    HookRegistry,
    compose_reference,
    flip_disabled_marker,
    hook_identity,
    parse_hook_value,
    parse_reference,
    sanitize_field,
    serialize_records,
)


# ------------------------------------------------------------------
# Reference grammar
# ------------------------------------------------------------------


class TestParseReference:
    def test_plain_function(self) -> None:
        record = parse_reference("integrate_actions", "my_action")
        assert record.callable == "my_action"
        assert record.source_file == ""
        assert record.enabled is True
        assert record.is_method is False
        assert record.identity == hook_identity("my_action")

    def test_file_disabled_and_method(self) -> None:
        record = parse_reference("integrate_actions", "$sourcedir/Foo.php|!Foo::bar#")
        assert record.source_file == "$sourcedir/Foo.php"
        assert record.callable == "Foo::bar"
        assert record.enabled is False
        assert record.is_method is True
        assert record.status == "error"

    def test_marker_in_front_of_file(self) -> None:
        record = parse_reference("integrate_actions", "!Foo.php|Foo::bar")
        assert record.enabled is False
        assert record.source_file == "Foo.php"
        assert record.callable == "Foo::bar"

    def test_markers_inside_file_path_are_literal(self) -> None:
        record = parse_reference("integrate_actions", "$boarddir/wow!/#x.php|Foo::bar")
        assert record.source_file == "$boarddir/wow!/#x.php"
        assert record.callable == "Foo::bar"
        assert record.enabled is True
        assert record.is_method is False

    def test_file_only_reference_cannot_be_disabled(self) -> None:
        record = parse_reference("integrate_pre_include", "$sourcedir/Boot.php|")
        assert record.callable == ""
        assert record.can_disable is False

    def test_round_trip(self) -> None:
        value = "a.php|Foo::bar#,!Baz::qux,$sourcedir/x.php|!helper"
        records = parse_hook_value("integrate_actions", value)
        assert len(records) == 3
        assert serialize_records(records) == value

    def test_blank_entries_are_skipped(self) -> None:
        records = parse_hook_value("integrate_actions", "Foo::bar,,")
        assert [r.callable for r in records] == ["Foo::bar"]


class TestComposeAndFlip:
    def test_compose_full(self) -> None:
        ref = compose_reference("Foo::bar", "$sourcedir/Foo.php", is_method=True, enabled=False)
        assert ref == "$sourcedir/Foo.php|!Foo::bar#"

    def test_compose_parses_back(self) -> None:
        ref = compose_reference("Foo::bar", "Foo.php", is_method=True)
        record = parse_reference("integrate_x", ref)
        assert (record.callable, record.source_file, record.is_method) == ("Foo::bar", "Foo.php", True)

    def test_flip_adds_marker_after_file(self) -> None:
        assert flip_disabled_marker("Foo.php|Foo::bar") == "Foo.php|!Foo::bar"

    def test_flip_removes_marker(self) -> None:
        assert flip_disabled_marker("!Baz::qux") == "Baz::qux"

    def test_flip_keeps_file_path_verbatim(self) -> None:
        assert flip_disabled_marker("$boarddir/wow!/x.php|Foo::bar") == "$boarddir/wow!/x.php|!Foo::bar"
        assert flip_disabled_marker("$boarddir/wow!/x.php|!Foo::bar") == "$boarddir/wow!/x.php|Foo::bar"

    def test_flip_marker_in_front_of_file(self) -> None:
        assert flip_disabled_marker("!Foo.php|Foo::bar") == "Foo.php|Foo::bar"

    def test_sanitize_field(self) -> None:
        assert sanitize_field("Foo <b>bar</b>") == "Foo_bar"
        assert sanitize_field("a\tb\x00c") == "a_b_c"


# ------------------------------------------------------------------
# Registry reads
# ------------------------------------------------------------------


class TestRegistryListing:
    def test_two_records_from_one_hook(
        self, store: DuckDBSettingsStore, registry: HookRegistry
    ) -> None:
        store.set("integrate_actions", "Foo::bar,!Baz::qux")
        records = registry.records()
        assert [(r.callable, r.enabled) for r in records] == [
            ("Foo::bar", True),
            ("Baz::qux", False),
        ]

    def test_only_prefixed_keys_are_read(
        self, store: DuckDBSettingsStore, registry: HookRegistry
    ) -> None:
        store.set("enableCompressedOutput", "1")
        store.set("integrate_actions", "Foo::bar")
        assert [r.hook_name for r in registry.records()] == ["integrate_actions"]

    def test_self_hooks_hidden(self, store: DuckDBSettingsStore, registry: HookRegistry) -> None:
        store.set("integrate_admin_areas", "DevPanel::admin,Other::admin")
        assert [r.callable for r in registry.records()] == ["Other::admin"]

    def test_show_all_includes_self_hooks(self, store: DuckDBSettingsStore) -> None:
        store.set("integrate_admin_areas", "DevPanel::admin,Other::admin")
        registry = HookRegistry(store, self_marker="DevPanel", show_all=True)
        assert len(registry.records()) == 2

    def test_records_are_cached_until_rebuild(
        self, store: DuckDBSettingsStore, registry: HookRegistry
    ) -> None:
        store.set("integrate_actions", "Foo::bar")
        assert len(registry.records()) == 1
        store.set("integrate_actions", "Foo::bar,Baz::qux")
        assert len(registry.records()) == 1
        assert len(registry.records(rebuild=True)) == 2

    def test_sort_search_and_paginate(
        self, store: DuckDBSettingsStore, registry: HookRegistry
    ) -> None:
        store.set("integrate_actions", "alpha_fn,!Beta::run")
        store.set("integrate_buffer", "$sourcedir/Gamma.php|gamma_fn")

        page, total, sort = registry.list_hooks(sort="callable DESC")
        assert sort == "callable DESC"
        assert total == 3
        assert [r.callable for r in page] == ["gamma_fn", "Beta::run", "alpha_fn"]

        page, total, _ = registry.list_hooks(offset=1, limit=1, sort="callable")
        assert total == 3
        assert [r.callable for r in page] == ["Beta::run"]

        page, total, _ = registry.list_hooks(filters=HookSearch(callable="FN"))
        assert total == 2

        page, total, _ = registry.list_hooks(
            filters=HookSearch(callable="fn", source_file="gamma")
        )
        assert [r.callable for r in page] == ["gamma_fn"]

    def test_sort_by_status(self, store: DuckDBSettingsStore, registry: HookRegistry) -> None:
        store.set("integrate_actions", "!off_fn,on_fn")
        page, _, _ = registry.list_hooks(sort="status DESC")
        assert [r.callable for r in page] == ["on_fn", "off_fn"]

    def test_unknown_sort_falls_back(
        self, store: DuckDBSettingsStore, registry: HookRegistry
    ) -> None:
        store.set("integrate_actions", "Foo::bar")
        _, _, sort = registry.list_hooks(sort="DROP TABLE settings")
        assert sort == "hook_name"

    def test_get_requires_unique_match(
        self, store: DuckDBSettingsStore, registry: HookRegistry
    ) -> None:
        store.set("integrate_actions", "Foo::bar")
        store.set("integrate_buffer", "Foo::bar")
        assert registry.get(hook_identity("Foo::bar")) is None
        assert registry.get("0" * 32) is None


# ------------------------------------------------------------------
# Registry mutations
# ------------------------------------------------------------------


class TestRegistryMutations:
    def test_toggle_enables_disabled_reference(
        self, store: DuckDBSettingsStore, registry: HookRegistry
    ) -> None:
        store.set("integrate_actions", "Foo::bar,!Baz::qux")
        result = registry.toggle(hook_identity("!Baz::qux"))

        assert result.modified is True
        assert result.record.raw_reference == "Baz::qux"
        assert store.get("integrate_actions") == "Foo::bar,Baz::qux"
        assert all(r.enabled for r in registry.records())

    def test_toggle_twice_restores_state(
        self, store: DuckDBSettingsStore, registry: HookRegistry
    ) -> None:
        store.set("integrate_actions", "Foo::bar,!Baz::qux")
        first = registry.toggle(hook_identity("Foo::bar"))
        assert first.record.enabled is False
        second = registry.toggle(first.record.identity)
        assert second.record.enabled is True
        assert second.record.identity == hook_identity("Foo::bar")

    def test_toggle_ambiguous_is_noop(
        self, store: DuckDBSettingsStore, registry: HookRegistry
    ) -> None:
        store.set("integrate_actions", "Foo::bar")
        store.set("integrate_buffer", "Foo::bar")
        result = registry.toggle(hook_identity("Foo::bar"))

        assert result.modified is False
        assert result.message == NOT_FOUND_MESSAGE
        assert store.get("integrate_actions") == "Foo::bar"
        assert store.get("integrate_buffer") == "Foo::bar"

    def test_toggle_onto_existing_reference_is_noop(
        self, store: DuckDBSettingsStore, registry: HookRegistry
    ) -> None:
        store.set("integrate_actions", "Foo::bar,!Foo::bar")
        result = registry.toggle(hook_identity("Foo::bar"))

        assert result.modified is False
        assert result.message == UNCHANGED_MESSAGE
        assert store.get("integrate_actions") == "Foo::bar,!Foo::bar"
        assert len(registry.records(rebuild=True)) == 2

    def test_toggle_file_only_reference_is_noop(
        self, store: DuckDBSettingsStore, registry: HookRegistry
    ) -> None:
        store.set("integrate_pre_include", "$sourcedir/Boot.php|")
        result = registry.toggle(hook_identity("$sourcedir/Boot.php|"))
        assert result.modified is False

    def test_add_then_delete_leaves_records_unchanged(
        self, store: DuckDBSettingsStore, registry: HookRegistry
    ) -> None:
        store.set("integrate_actions", "Foo::bar,!Baz::qux")
        before = registry.records(rebuild=True)

        added = registry.add("actions", "New::handler", "$sourcedir/New.php")
        assert added.modified is True
        assert added.record.hook_name == "integrate_actions"
        assert len(registry.records()) == 3

        deleted = registry.delete(added.record.identity)
        assert deleted.modified is True
        assert registry.records() == before

    def test_add_duplicate_is_unchanged(
        self, store: DuckDBSettingsStore, registry: HookRegistry
    ) -> None:
        store.set("integrate_actions", "Foo::bar")
        result = registry.add("integrate_actions", "Foo::bar")
        assert result.modified is False
        assert result.message == UNCHANGED_MESSAGE
        assert store.get("integrate_actions") == "Foo::bar"

    def test_add_sanitizes_and_prefixes(self, store: DuckDBSettingsStore, registry: HookRegistry) -> None:
        result = registry.add("my hook", "Foo <b>bar</b>", is_method=True)
        assert result.record.hook_name == "integrate_my_hook"
        assert store.get("integrate_my_hook") == "Foo_bar#"

    def test_add_without_callable_is_rejected(self, store: DuckDBSettingsStore, registry: HookRegistry) -> None:
        result = registry.add("actions", "<b></b>")
        assert result.modified is False
        assert store.get("integrate_actions") is None

    def test_delete_last_reference_writes_empty_value(
        self, store: DuckDBSettingsStore, registry: HookRegistry
    ) -> None:
        store.set("integrate_actions", "Foo::bar")
        registry.delete(hook_identity("Foo::bar"))
        assert store.get("integrate_actions") == ""
        assert registry.records() == []

    def test_modify_changes_identity(
        self, store: DuckDBSettingsStore, registry: HookRegistry
    ) -> None:
        store.set("integrate_actions", "Foo::bar,Other::fn")
        old_identity = hook_identity("Foo::bar")
        result = registry.modify(old_identity, "integrate_actions", "Foo::baz", "Foo.php")

        assert result.modified is True
        assert result.record.identity != old_identity
        assert result.record.raw_reference == "Foo.php|Foo::baz"
        assert registry.get(old_identity) is None
        assert store.get("integrate_actions") == "Other::fn,Foo.php|Foo::baz"

    def test_modify_unknown_identity_is_noop(
        self, store: DuckDBSettingsStore, registry: HookRegistry
    ) -> None:
        store.set("integrate_actions", "Foo::bar")
        result = registry.modify("f" * 32, "integrate_actions", "Foo::baz")
        assert result.modified is False
        assert store.get("integrate_actions") == "Foo::bar"

    def test_modify_without_callable_keeps_entry(
        self, store: DuckDBSettingsStore, registry: HookRegistry
    ) -> None:
        store.set("integrate_actions", "Foo::bar")
        result = registry.modify(hook_identity("Foo::bar"), "integrate_actions", "<b></b>")

        assert result.modified is False
        assert result.message == UNCHANGED_MESSAGE
        assert store.get("integrate_actions") == "Foo::bar"
        assert registry.get(hook_identity("Foo::bar")) is not None

    def test_modify_onto_existing_reference_keeps_both(
        self, store: DuckDBSettingsStore, registry: HookRegistry
    ) -> None:
        store.set("integrate_actions", "Foo::bar,Other::fn")
        result = registry.modify(hook_identity("Foo::bar"), "actions", "Other::fn")

        assert result.modified is False
        assert store.get("integrate_actions") == "Foo::bar,Other::fn"
        assert len(registry.records(rebuild=True)) == 2

    def test_modify_to_same_reference_is_unchanged(
        self, store: DuckDBSettingsStore, registry: HookRegistry
    ) -> None:
        store.set("integrate_actions", "Foo::bar")
        result = registry.modify(hook_identity("Foo::bar"), "integrate_actions", "Foo::bar")

        assert result.modified is False
        assert store.get("integrate_actions") == "Foo::bar"

    def test_integration_function_primitives(
        self, store: DuckDBSettingsStore, registry: HookRegistry
    ) -> None:
        assert registry.add_integration_function("integrate_actions", "Foo::bar", "Foo.php") is True
        assert registry.add_integration_function("integrate_actions", "Foo::bar", "Foo.php") is False
        assert store.get("integrate_actions") == "Foo.php|Foo::bar"
        assert registry.remove_integration_function("integrate_actions", "Foo::bar", "Foo.php") is True
        assert registry.remove_integration_function("integrate_actions", "Foo::bar", "Foo.php") is False
