"""MCP server exposing wechat-mdx export and image tools."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import anyio
from mcp.server.fastmcp import FastMCP

from . import api
from .config import DEFAULT_ASSETS_DIR
from .token_cache import AccessTokenCache

logger = logging.getLogger("wechat_mdx.mcp")
logger.setLevel(logging.ERROR)

mcp = FastMCP(name="wechat-mdx")

# One cache per server process, shared by every tool call.
token_cache = AccessTokenCache()


@mcp.tool()
async def convert(markdown: str, css: str = "") -> str:
    """Convert Markdown into WeChat-ready HTML with inline styles."""
    return await anyio.to_thread.run_sync(api.convert, markdown, css)


@mcp.tool()
async def localize_images(
    markdown: str,
    base_dir: str,
    site_prefix: Optional[str] = None,
    assets_dir: str = DEFAULT_ASSETS_DIR,
) -> str:
    """Download remote images into the document's assets directory."""

    def _run() -> str:
        return api.localize_images(
            markdown, base_dir, site_prefix=site_prefix, assets_dir=assets_dir
        )

    return await anyio.to_thread.run_sync(_run)


@mcp.tool()
async def publish_images(
    markdown: str,
    app_id: str = "",
    app_secret: str = "",
    base_dir: Optional[str] = None,
    site_prefix: Optional[str] = None,
) -> Dict[str, Any]:
    """Upload images to the WeChat media library and return the rewritten Markdown."""

    def _run() -> Dict[str, Any]:
        result = api.publish_images(
            markdown,
            app_id,
            app_secret,
            token_cache,
            base_dir=base_dir,
            site_prefix=site_prefix,
        )
        return result.to_dict()

    return await anyio.to_thread.run_sync(_run)


@mcp.tool()
async def access_token_status(app_id: str = "", app_secret: str = "") -> str:
    """Check WeChat credentials by acquiring an access token."""
    return await anyio.to_thread.run_sync(
        api.access_token_status, app_id, app_secret, token_cache
    )


def main() -> None:
    """Entry point for running the MCP server."""
    logging.basicConfig(level=logging.ERROR)
    mcp.run()


if __name__ == "__main__":
    main()
