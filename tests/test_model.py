"""Tests for ExtensionsModel search, reconciliation, refresh and resolve."""

import asyncio
import logging

import pytest
from extension_catalog import CatalogConfig
from extension_catalog import ExtensionResolveError
from extension_catalog import ExtensionsModel
from extension_catalog import HostPlugin
from extension_catalog import RegistryError


def summary(publisher: str, name: str, **fields) -> dict:
    return {"namespace": publisher, "name": name, **fields}


def vscode(extension_id: str, version: str = "1.0.0") -> HostPlugin:
    return HostPlugin(id=extension_id, engine_type="vscode", version=version)


@pytest.mark.asyncio
async def test_search_end_to_end(model, registry):
    """Test query -> debounce -> search populates result set and records."""
    registry.search_results["foo"] = [
        summary("Acme", "Foo", version="1.0.0", description="Foo extension"),
        summary("acme", "foobar", version="2.1.0", displayName="Foo Bar"),
    ]

    await model.start()
    model.query = "foo"
    await model.settle()

    assert model.search_result == {"acme.foo", "acme.foobar"}
    foo = model.get_extension("acme.foo")
    assert foo is not None
    assert foo.version == "1.0.0"
    assert foo.description == "Foo extension"
    foobar = model.get_extension("acme.foobar")
    assert foobar is not None
    assert foobar.display_name == "Foo Bar"

    await model.close()


@pytest.mark.asyncio
async def test_debounce_coalesces_query_changes(model, registry):
    """Test rapid query changes produce one search with the last value."""
    await model.start()

    model.query = "f"
    model.query = "fo"
    model.query = "foo"
    await model.settle()

    assert registry.search_calls == ["foo"]

    await model.close()


@pytest.mark.asyncio
async def test_query_change_event(model):
    """Test query setter fires only on actual change."""
    queries = []
    model.on_did_change_query.subscribe(queries.append)

    model.query = "foo"
    model.query = "foo"
    model.query = "bar"

    assert queries == ["foo", "bar"]
    assert model.query == "bar"


@pytest.mark.asyncio
async def test_superseded_search_is_discarded(model, registry):
    """Test a stale response arriving after a newer one never reaches the store."""
    registry.search_results["a"] = [summary("acme", "alpha")]
    registry.search_results["b"] = [summary("acme", "beta")]
    registry.search_gates["a"] = asyncio.Event()
    registry.search_gates["b"] = asyncio.Event()

    committed = asyncio.Event()
    changes = []

    def on_change(_):
        changes.append(set(model.search_result))
        if "acme.beta" in model.search_result:
            committed.set()

    # Set before start so the first search cycle already uses "a"
    model.query = "a"
    await model.start()
    model.on_did_change.subscribe(on_change)

    await asyncio.wait_for(registry.search_started["a"].wait(), timeout=1)
    model.query = "b"
    await asyncio.wait_for(registry.search_started["b"].wait(), timeout=1)

    # Newer response first, then the stale one
    registry.search_gates["b"].set()
    await asyncio.wait_for(committed.wait(), timeout=1)
    registry.search_gates["a"].set()
    await model.settle()

    assert model.search_result == {"acme.beta"}
    assert model.get_extension("acme.alpha") is None
    # Only the committed cycle notified
    assert changes == [{"acme.beta"}]

    await model.close()


@pytest.mark.asyncio
async def test_failed_search_keeps_previous_result(model, registry, caplog):
    """Test registry failure leaves the search result untouched."""
    registry.search_results["foo"] = [summary("acme", "foo")]
    registry.errors["boom"] = RegistryError("registry unreachable", status_code=503)

    await model.start()
    model.query = "foo"
    await model.settle()
    assert model.search_result == {"acme.foo"}

    changes = []
    model.on_did_change.subscribe(changes.append)
    with caplog.at_level(logging.ERROR):
        model.query = "boom"
        await model.settle()

    assert model.search_result == {"acme.foo"}
    assert changes == []
    assert "Failed to search extensions for 'boom'" in caplog.text

    await model.close()


@pytest.mark.asyncio
async def test_search_and_install_state_merge(model, registry, host):
    """Test search summary fields do not clobber install state."""
    host.set_plugins([vscode("acme.foo", "0.9.0")])
    registry.details["acme.foo"] = summary("acme", "foo", version="1.0.0", readmeUrl="https://r/readme.md")
    registry.search_results["foo"] = [summary("acme", "foo", version="1.1.0", description="Searched")]

    await model.start()
    await model.settle()
    model.query = "foo"
    await model.settle()

    record = model.get_extension("acme.foo")
    assert record is not None
    assert record.installed is True
    assert record.installed_version == "0.9.0"
    assert record.version == "1.1.0"
    assert record.description == "Searched"
    assert record.readme_url == "https://r/readme.md"

    await model.close()


@pytest.mark.asyncio
async def test_installed_reconciliation(model, registry, host):
    """Test installed set mirrors host plugins of the catalog's engine type."""
    registry.details["acme.foo"] = summary("acme", "foo", version="1.0.0")
    host.set_plugins(
        [
            vscode("Acme.Foo"),
            vscode("acme.bar"),
            HostPlugin(id="theia.builtin", engine_type="theiaPlugin"),
        ]
    )

    await model.start()
    await model.settle()

    assert model.installed == {"acme.foo", "acme.bar"}
    assert sorted(registry.get_calls) == ["acme.bar", "acme.foo"]
    assert model.get_extension("theia.builtin") is None
    # Registry does not know acme.bar yet; the installed record survives
    bar = model.get_extension("acme.bar")
    assert bar is not None
    assert bar.installed is True

    await model.close()


@pytest.mark.asyncio
async def test_installed_set_replaced_before_refreshes_complete(model, registry, host):
    """Test installed snapshot is exact while refreshes are still in flight."""
    registry.detail_gate = asyncio.Event()
    registry.details["acme.foo"] = summary("acme", "foo", version="1.0.0")
    host.set_plugins([vscode("acme.foo")])

    await model.start()

    assert model.installed == {"acme.foo"}
    assert model.get_extension("acme.foo").version is None

    registry.detail_gate.set()
    await model.settle()

    assert model.get_extension("acme.foo").version == "1.0.0"

    await model.close()


@pytest.mark.asyncio
async def test_host_change_triggers_reconciliation(model, registry, host):
    """Test removed plugins are dropped from the installed set and refreshed."""
    registry.details["acme.foo"] = summary("acme", "foo", version="1.0.0")
    registry.details["acme.bar"] = summary("acme", "bar", version="3.0.0")
    host.set_plugins([vscode("acme.foo"), vscode("acme.bar")])

    await model.start()
    await model.settle()
    registry.get_calls.clear()

    host.set_plugins([vscode("acme.bar")])
    await model.settle()

    assert model.installed == {"acme.bar"}
    assert sorted(registry.get_calls) == ["acme.bar", "acme.foo"]
    foo = model.get_extension("acme.foo")
    assert foo is not None
    assert foo.installed is False
    assert foo.version == "1.0.0"

    await model.close()


@pytest.mark.asyncio
async def test_uninstalled_extension_unknown_to_registry(model, registry, host):
    """Test a vanished id the registry 404s is kept as an unreferenced record."""
    host.set_plugins([vscode("acme.gone")])

    await model.start()
    await model.settle()
    host.set_plugins([])
    await model.settle()

    assert model.installed == frozenset()
    record = model.get_extension("acme.gone")
    assert record is not None
    assert record.installed is False
    assert await model.refresh("acme.gone") is None

    await model.close()


@pytest.mark.asyncio
async def test_refresh_not_found_while_installed_returns_record(model, host):
    """Test 404 for an installed extension returns the prior record unchanged."""
    host.set_plugins([vscode("acme.foo")])
    await model.start()
    await model.settle()
    model.store.upsert("acme.foo", {"version": "1.0"})
    record = model.get_extension("acme.foo")
    before = record.model_dump()

    refreshed = await model.refresh("acme.foo")

    assert refreshed is record
    assert refreshed.model_dump() == before

    await model.close()


@pytest.mark.asyncio
async def test_refresh_transport_error_returns_none(model, registry, host, caplog):
    """Test non-404 errors are logged and resolve to None even when installed."""
    host.set_plugins([vscode("acme.foo")])
    registry.errors["acme.foo"] = RegistryError("server error", status_code=500)

    with caplog.at_level(logging.ERROR):
        await model.start()
        await model.settle()
        assert await model.refresh("acme.foo") is None

    assert "[acme.foo]: failed to refresh" in caplog.text
    assert model.installed == {"acme.foo"}

    await model.close()


@pytest.mark.asyncio
async def test_refresh_updates_record(model, registry):
    """Test successful refresh merges registry detail."""
    registry.details["acme.foo"] = summary(
        "acme", "foo", version="2.0.0", files={"download": "https://r/foo.vsix", "icon": "https://r/icon.png"}
    )

    record = await model.refresh("acme.foo")

    assert record is not None
    assert record.version == "2.0.0"
    assert record.download_url == "https://r/foo.vsix"
    assert record.icon_url == "https://r/icon.png"
    assert model.get_extension("acme.foo") is record


@pytest.mark.asyncio
async def test_resolve_unknown_extension_fails(model):
    """Test resolve raises for an id the registry does not know and host never installed."""
    with pytest.raises(ExtensionResolveError, match="Failed to resolve acme.missing"):
        await model.resolve("acme.missing")


@pytest.mark.asyncio
async def test_resolve_renders_readme(model, registry):
    """Test resolve converts and sanitizes the readme."""
    registry.details["acme.foo"] = summary("acme", "foo", version="1.0.0", files={"readme": "https://r/README.md"})
    registry.texts["https://r/README.md"] = "# Foo\n\nSome **bold** text.\n\n<script>alert(1)</script>\n"

    record = await model.resolve("acme.foo")

    assert record.readme is not None
    assert "<h2>Foo</h2>" in record.readme
    assert "<strong>bold</strong>" in record.readme
    assert "script" not in record.readme
    assert "alert" not in record.readme


@pytest.mark.asyncio
async def test_resolve_without_readme(model, registry):
    """Test readme 404 is not an error."""
    registry.details["acme.foo"] = summary("acme", "foo", description="Foo", readmeUrl="https://r/missing.md")

    record = await model.resolve("acme.foo")

    assert record.description == "Foo"
    assert record.readme is None


@pytest.mark.asyncio
async def test_resolve_readme_failure_is_logged(model, registry, caplog):
    """Test non-404 readme failures are logged and do not fail resolve."""
    registry.details["acme.foo"] = summary("acme", "foo", readmeUrl="https://r/README.md")
    registry.errors["https://r/README.md"] = RegistryError("timeout")

    with caplog.at_level(logging.ERROR):
        record = await model.resolve("acme.foo")

    assert record.readme is None
    assert "[acme.foo]: failed to compile readme" in caplog.text


@pytest.mark.asyncio
async def test_resolve_fires_single_change(model, registry, progress):
    """Test one change event per committed operation, wrapped in progress."""
    registry.details["acme.foo"] = summary("acme", "foo", readmeUrl="https://r/README.md")
    registry.texts["https://r/README.md"] = "hello"
    changes = []
    model.on_did_change.subscribe(changes.append)

    await model.resolve("acme.foo")

    assert changes == [None]
    assert progress.calls == [("", "extensions")]
    assert progress.active == 0


@pytest.mark.asyncio
async def test_failed_resolve_fires_no_change(model):
    """Test failed operations do not notify observers."""
    changes = []
    model.on_did_change.subscribe(changes.append)

    with pytest.raises(ExtensionResolveError):
        await model.resolve("acme.missing")

    assert changes == []


@pytest.mark.asyncio
async def test_close_unsubscribes_from_host(model, registry, host):
    """Test closed model ignores host and query changes."""
    await model.start()
    await model.settle()
    await model.close()

    host.set_plugins([vscode("acme.foo")])
    model.query = "foo"
    await asyncio.sleep(0.1)

    assert model.installed == frozenset()
    assert "foo" not in registry.search_calls


@pytest.mark.asyncio
@pytest.mark.parametrize(("limit", "expected_in_flight"), [(None, 5), (2, 2)])
async def test_reconciliation_refreshes_run_concurrently(registry, host, progress, limit, expected_in_flight):
    """Test refreshes are issued together, bounded by max_concurrent_refreshes."""
    ids = [f"acme.ext{index}" for index in range(5)]
    for extension_id in ids:
        registry.details[extension_id] = summary("acme", extension_id.split(".")[1], version="1.0.0")
    host.set_plugins([vscode(extension_id) for extension_id in ids])
    registry.detail_gate = asyncio.Event()

    config = CatalogConfig(search_debounce=0.05, max_concurrent_refreshes=limit)
    model = ExtensionsModel(registry=registry, host=host, progress=progress, config=config)
    await model.start()
    await asyncio.sleep(0.02)

    assert len(registry.get_calls) == expected_in_flight

    registry.detail_gate.set()
    await model.settle()

    assert sorted(registry.get_calls) == ids
    assert all(model.get_extension(extension_id).version == "1.0.0" for extension_id in ids)

    await model.close()


@pytest.mark.asyncio
async def test_close_waits_for_running_search(model, registry):
    """Test close returns only after an in-flight search task has finished."""
    registry.search_gates["foo"] = asyncio.Event()

    await model.start()
    model.query = "foo"
    await asyncio.wait_for(registry.search_started["foo"].wait(), timeout=1)

    await model.close()

    assert asyncio.all_tasks() == {asyncio.current_task()}
    assert model.search_result == frozenset()
