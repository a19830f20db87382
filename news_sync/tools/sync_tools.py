"""Reading-state sync MCP tools.

This module provides MCP tools for recording reading state (read articles,
favorites, custom sources, preferences), running a full sync and reading the
sync status.

NOTE: Never use Optional parameters in MCP tools - they break MCP clients.
Use empty string "" for optional strings and 0 for optional integers.
"""

from typing import Any, Callable, Dict, List

from mcp.server.fastmcp import Context

from news_sync.services.sync_engine import SyncEngine


def _missing(**values: str) -> List[str]:
    return [name for name, value in values.items() if not value or not value.strip()]


def _invalid(names: List[str]) -> Dict[str, Any]:
    return {
        "success": False,
        "error": f"Missing required value(s): {', '.join(names)}",
    }


def create_sync_tools(engine: SyncEngine) -> List[Callable]:
    """Build the tool functions bound to one sync engine.

    Args:
        engine: Engine every tool operates on

    Returns:
        List of async tool functions, ready for registration
    """

    async def mark_article_read(
        article_id: str,
        title: str,
        source: str,
        ctx: Context = None,
    ) -> Dict[str, Any]:
        """Mark an article as read on this device and sync it to the others.

        The read marker is stored locally right away. If the sync account is
        reachable it is also pushed immediately; otherwise it is uploaded by the
        next full sync. Marking an already-read article keeps the original marker.

        Args:
            article_id: Stable identifier of the article
            title: Article headline
            source: Name of the publishing source
            ctx: MCP Context object (injected automatically)

        Returns:
            Dictionary with:
            - success: bool
            - read_marker: object with article_id, title, source, read_date
            - error: string if success is False
        """
        missing = _missing(article_id=article_id, title=title, source=source)
        if missing:
            return _invalid(missing)

        marker = await engine.mark_read(article_id, title, source)
        return {"success": True, "read_marker": marker.to_dict()}

    async def add_favorite(
        article_id: str,
        title: str,
        source: str,
        category: str,
        ctx: Context = None,
    ) -> Dict[str, Any]:
        """Save an article as a favorite and sync it to other devices.

        Favorites are append-only: saving an article that is already a favorite
        keeps the first saved copy.

        Args:
            article_id: Stable identifier of the article
            title: Article headline
            source: Name of the publishing source
            category: News category (e.g. "World", "Technology")
            ctx: MCP Context object (injected automatically)

        Returns:
            Dictionary with:
            - success: bool
            - favorite: object with article_id, title, source, category, saved_date
            - error: string if success is False
        """
        missing = _missing(article_id=article_id, title=title, source=source, category=category)
        if missing:
            return _invalid(missing)

        favorite = await engine.add_favorite(article_id, title, source, category)
        return {"success": True, "favorite": favorite.to_dict()}

    async def add_custom_source(
        name: str,
        url: str,
        category: str,
        ctx: Context = None,
    ) -> Dict[str, Any]:
        """Add a custom news source and sync it to other devices.

        The source gets a generated id and starts enabled.

        Args:
            name: Display name of the source
            url: Feed or homepage URL (normalized to https:// if no scheme)
            category: News category the source belongs to
            ctx: MCP Context object (injected automatically)

        Returns:
            Dictionary with:
            - success: bool
            - custom_source: object with id, name, url, category, is_enabled
            - error: string if success is False
        """
        missing = _missing(name=name, url=url, category=category)
        if missing:
            return _invalid(missing)

        # Normalize URL
        if not url.startswith(("http://", "https://")):
            url = "https://" + url

        source = await engine.add_custom_source(name, url, category)
        return {"success": True, "custom_source": source.to_dict()}

    async def set_custom_source_enabled(
        source_id: str,
        is_enabled: bool,
        ctx: Context = None,
    ) -> Dict[str, Any]:
        """Enable or disable a custom source.

        Args:
            source_id: Id of the source (from list_custom_sources response)
            is_enabled: True to enable, False to disable
            ctx: MCP Context object (injected automatically)

        Returns:
            Dictionary with:
            - success: bool
            - custom_source: updated source object (if found)
            - error: string if the source was not found
        """
        source = await engine.set_custom_source_enabled(source_id, is_enabled)
        if source is None:
            return {
                "success": False,
                "error": f"Custom source with id {source_id} not found",
            }
        return {"success": True, "custom_source": source.to_dict()}

    async def update_preference(
        key: str,
        value: str,
        ctx: Context = None,
    ) -> Dict[str, Any]:
        """Set a preference and sync it to other devices.

        Preferences resolve conflicts by modification time: the most recent
        change on any device wins.

        Args:
            key: Preference name (e.g. "theme")
            value: New value
            ctx: MCP Context object (injected automatically)

        Returns:
            Dictionary with:
            - success: bool
            - preference: object with key, value, modified_date
            - error: string if success is False
        """
        missing = _missing(key=key)
        if missing:
            return _invalid(missing)

        preference = await engine.update_preference(key, value)
        return {"success": True, "preference": preference.to_dict()}

    async def perform_full_sync(ctx: Context = None) -> Dict[str, Any]:
        """Run a full sync: upload local changes, then download and merge remote records.

        Only one sync runs at a time; a request made while one is running is
        rejected. The last sync time advances only when the whole cycle succeeds.

        Args:
            ctx: MCP Context object (injected automatically)

        Returns:
            Dictionary with:
            - success: bool
            - report: upload/download counts, error and timing of the cycle
            - status: sync status after the cycle
            - error: string if the cycle failed or was rejected
        """
        report = await engine.perform_full_sync()
        result = {
            "success": report.success,
            "report": report.to_dict(),
            "status": engine.status_observable.snapshot(),
        }
        if not report.success:
            result["error"] = report.error
        return result

    async def get_sync_status(ctx: Context = None) -> Dict[str, Any]:
        """Get the current sync status.

        Args:
            ctx: MCP Context object (injected automatically)

        Returns:
            Dictionary with:
            - success: bool
            - status, status_text, count: current state of the sync state machine
            - last_sync_date: ISO timestamp of the last successful sync, or null
            - remote_available: whether the sync account is reachable
            - last_error_message: message of the last failed sync, or null
        """
        return {"success": True, **engine.status_observable.snapshot()}

    async def list_read_markers(limit: int = 50, ctx: Context = None) -> Dict[str, Any]:
        """List read articles, most recently read first.

        Args:
            limit: Maximum number of markers to return (default: 50, 0 for all)
            ctx: MCP Context object (injected automatically)

        Returns:
            Dictionary with:
            - success: bool
            - count: number of markers returned
            - read_markers: list of objects with article_id, title, source, read_date
        """
        markers = sorted(await engine.read_markers(), key=lambda m: m.read_date, reverse=True)
        if limit > 0:
            markers = markers[:limit]
        return {
            "success": True,
            "count": len(markers),
            "read_markers": [m.to_dict() for m in markers],
        }

    async def list_favorites(category: str = "", ctx: Context = None) -> Dict[str, Any]:
        """List favorite articles, most recently saved first.

        Args:
            category: Only favorites in this category (empty string for all)
            ctx: MCP Context object (injected automatically)

        Returns:
            Dictionary with:
            - success: bool
            - count: number of favorites returned
            - favorites: list of objects with article_id, title, source, category, saved_date
        """
        favorites = await engine.favorites()
        if category:
            favorites = [f for f in favorites if f.category == category]
        favorites.sort(key=lambda f: f.saved_date, reverse=True)
        return {
            "success": True,
            "count": len(favorites),
            "favorites": [f.to_dict() for f in favorites],
        }

    async def list_custom_sources(include_disabled: bool = True, ctx: Context = None) -> Dict[str, Any]:
        """List custom news sources.

        Args:
            include_disabled: Include disabled sources (default: True)
            ctx: MCP Context object (injected automatically)

        Returns:
            Dictionary with:
            - success: bool
            - count: number of sources returned
            - custom_sources: list of objects with id, name, url, category, is_enabled
        """
        sources = await engine.custom_sources()
        if not include_disabled:
            sources = [s for s in sources if s.is_enabled]
        return {
            "success": True,
            "count": len(sources),
            "custom_sources": [s.to_dict() for s in sources],
        }

    async def list_preferences(ctx: Context = None) -> Dict[str, Any]:
        """List all preferences.

        Args:
            ctx: MCP Context object (injected automatically)

        Returns:
            Dictionary with:
            - success: bool
            - count: number of preferences
            - preferences: mapping of key to object with value and modified_date
        """
        preferences = await engine.preferences()
        return {
            "success": True,
            "count": len(preferences),
            "preferences": {
                p.key: {"value": p.value, "modified_date": p.modified_date.isoformat()}
                for p in preferences
            },
        }

    return [
        mark_article_read,
        add_favorite,
        add_custom_source,
        set_custom_source_enabled,
        update_preference,
        perform_full_sync,
        get_sync_status,
        list_read_markers,
        list_favorites,
        list_custom_sources,
        list_preferences,
    ]
