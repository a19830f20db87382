"""Sync Tools Integration Tests.

This test suite validates the MCP tools against a real engine, local store
and in-memory remote account, and checks tool registration on the server.
"""

import anyio
import httpx
import pytest

from news_sync.config import ServerConfig
from news_sync.models.schemas import RecordKind
from news_sync.remote.http_remote import HttpRemoteStore
from news_sync.remote.memory import InMemoryRemoteStore
from news_sync.server.app import build_engine, build_remote, create_mcp_server, engine_running
from news_sync.services.sync_engine import SyncEngine
from news_sync.storage.database import LocalStore


# Use anyio instead of pytest-asyncio to match SDK approach
pytestmark = pytest.mark.anyio

EXPECTED_TOOLS = [
    "mark_article_read",
    "add_favorite",
    "add_custom_source",
    "set_custom_source_enabled",
    "update_preference",
    "perform_full_sync",
    "get_sync_status",
    "list_read_markers",
    "list_favorites",
    "list_custom_sources",
    "list_preferences",
]


class TestToolRegistration:
    """Test tool discovery on the MCP server."""

    async def test_all_sync_tools_registered(self, make_device):
        engine = await make_device()
        server = create_mcp_server(ServerConfig(), engine=engine)

        tools = await server.list_tools()
        tool_names = [tool.name for tool in tools]

        for expected in EXPECTED_TOOLS:
            assert expected in tool_names, f"Sync tool {expected} not found in {tool_names}"

    async def test_no_kwargs_in_tool_schemas(self, make_device):
        """Test that no tool has a 'kwargs' parameter (MCP compatibility)."""
        engine = await make_device()
        server = create_mcp_server(ServerConfig(), engine=engine)

        for tool in await server.list_tools():
            properties = (tool.inputSchema or {}).get("properties", {})
            assert "kwargs" not in properties, f"Tool {tool.name} has kwargs parameter"
            assert "ctx" not in properties, f"Tool {tool.name} exposes ctx"

    async def test_tools_have_descriptions(self, make_device):
        engine = await make_device()
        server = create_mcp_server(ServerConfig(), engine=engine)

        for tool in await server.list_tools():
            assert tool.description, f"Tool {tool.name} missing description"


class ClosingRemote(InMemoryRemoteStore):
    """In-memory remote that records being closed."""

    closed = False

    async def close(self):
        self.closed = True


def sync_api(request: httpx.Request) -> httpx.Response:
    """Empty sync account served over httpx.MockTransport."""
    if request.url.path == "/account/status":
        return httpx.Response(200, json={"status": "available"})
    if request.method == "GET":
        return httpx.Response(200, json={"records": []})
    return httpx.Response(200, json={})


class TestServerLifecycle:
    """Test engine ownership across client sessions."""

    async def test_engine_survives_consecutive_sessions(self, clock):
        remote = HttpRemoteStore("https://sync.example", transport=httpx.MockTransport(sync_api))
        engine = SyncEngine(LocalStore(":memory:"), remote, clock=clock, complete_display_delay=0)
        server = create_mcp_server(ServerConfig(), engine=engine)
        low_level = server._mcp_server

        reports = []
        try:
            for _ in range(2):
                async with low_level.lifespan(low_level) as context:
                    assert context["engine"] is engine
                    reports.append(await engine.perform_full_sync())
        finally:
            await engine.close()

        assert [report.success for report in reports] == [True, True]

    async def test_engine_running_starts_and_closes(self, clock):
        remote = ClosingRemote()
        store = LocalStore(":memory:")
        engine = SyncEngine(store, remote, clock=clock, complete_display_delay=0)

        async with engine_running(engine, sync_interval=3600) as running:
            assert running is engine
            assert engine.remote_available is True
            with anyio.fail_after(5):
                while engine.last_sync_date is None:
                    await anyio.sleep(0.01)

        assert remote.closed is True
        assert store._db is None

    async def test_engine_running_without_periodic_sync(self, clock):
        remote = ClosingRemote()
        engine = SyncEngine(LocalStore(":memory:"), remote, clock=clock, complete_display_delay=0)

        async with engine_running(engine):
            pass

        assert engine.last_sync_date is None
        assert remote.closed is True


def test_build_remote_defaults_to_memory():
    assert isinstance(build_remote(ServerConfig()), InMemoryRemoteStore)


def test_build_remote_uses_http_when_configured():
    remote = build_remote(ServerConfig(remote_url="https://sync.example", workspace="Home"))

    assert isinstance(remote, HttpRemoteStore)
    assert remote.workspace == "Home"


def test_build_engine_applies_config(tmp_path):
    engine = build_engine(ServerConfig(
        db_path=str(tmp_path / "db.sqlite"),
        complete_display_delay=0.5,
        max_concurrent_uploads=2,
    ))

    assert engine.store.db_path == str(tmp_path / "db.sqlite")
    assert engine.complete_display_delay == 0.5
    assert engine.max_concurrent_uploads == 2


class TestMutationTools:
    """Test the mutation tools."""

    async def test_mark_article_read(self, tools, account):
        result = await tools["mark_article_read"](article_id="a1", title="Headline", source="Wire")

        assert result["success"] is True
        assert result["read_marker"]["article_id"] == "a1"
        assert "a1" in account.records(RecordKind.READ_MARKER)

    async def test_mark_article_read_requires_fields(self, tools):
        result = await tools["mark_article_read"](article_id="", title="Headline", source=" ")

        assert result["success"] is False
        assert "article_id" in result["error"]
        assert "source" in result["error"]

    async def test_add_favorite(self, tools):
        result = await tools["add_favorite"](
            article_id="a1", title="Headline", source="Wire", category="World"
        )

        assert result["success"] is True
        assert result["favorite"]["category"] == "World"

    async def test_add_custom_source_normalizes_url(self, tools):
        result = await tools["add_custom_source"](
            name="Local Paper", url="paper.example/rss", category="Local"
        )

        assert result["success"] is True
        assert result["custom_source"]["url"] == "https://paper.example/rss"
        assert result["custom_source"]["is_enabled"] is True

    async def test_disable_custom_source(self, tools):
        added = await tools["add_custom_source"](name="Paper", url="https://p", category="Local")
        source_id = added["custom_source"]["id"]

        result = await tools["set_custom_source_enabled"](source_id=source_id, is_enabled=False)
        listed = await tools["list_custom_sources"](include_disabled=False)

        assert result["success"] is True
        assert result["custom_source"]["is_enabled"] is False
        assert listed["count"] == 0

    async def test_disable_unknown_source(self, tools):
        result = await tools["set_custom_source_enabled"](source_id="missing", is_enabled=False)

        assert result["success"] is False
        assert "not found" in result["error"]

    async def test_update_preference(self, tools):
        await tools["update_preference"](key="theme", value="dark")
        await tools["update_preference"](key="theme", value="light")

        listed = await tools["list_preferences"]()

        assert listed["count"] == 1
        assert listed["preferences"]["theme"]["value"] == "light"

    async def test_update_preference_requires_key(self, tools):
        result = await tools["update_preference"](key="", value="x")

        assert result["success"] is False


class TestListTools:
    """Test the read-side tools."""

    async def test_list_read_markers_newest_first_with_limit(self, tools):
        for article_id in ("a1", "a2", "a3"):
            await tools["mark_article_read"](article_id=article_id, title="T", source="S")

        result = await tools["list_read_markers"](limit=2)

        assert result["count"] == 2
        assert [m["article_id"] for m in result["read_markers"]] == ["a3", "a2"]

    async def test_list_favorites_by_category(self, tools):
        await tools["add_favorite"](article_id="a1", title="T", source="S", category="World")
        await tools["add_favorite"](article_id="a2", title="T", source="S", category="Tech")

        result = await tools["list_favorites"](category="Tech")

        assert result["count"] == 1
        assert result["favorites"][0]["article_id"] == "a2"


class TestSyncTools:
    """Test the sync and status tools."""

    async def test_perform_full_sync(self, tools):
        await tools["add_favorite"](article_id="a1", title="T", source="S", category="World")

        result = await tools["perform_full_sync"]()

        assert result["success"] is True
        assert result["report"]["upload_candidates"] == 1
        assert result["status"]["status"] == "idle"
        assert result["status"]["last_sync_date"] is not None

    async def test_perform_full_sync_reports_unavailable(self, tools, account):
        account.reachable = False

        result = await tools["perform_full_sync"]()

        assert result["success"] is False
        assert result["error"] == "remote unavailable"
        assert result["status"]["status"] == "idle"
        assert result["status"]["last_error_message"] == "remote unavailable"

    async def test_get_sync_status(self, tools):
        result = await tools["get_sync_status"]()

        assert result["success"] is True
        assert result["status"] == "idle"
        assert result["remote_available"] is True
        assert result["last_sync_date"] is None
        assert result["last_error_message"] is None
