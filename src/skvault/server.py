"""SKVault MCP server — read-only vault tools over stdio.

Exposes archive validation, version history and diffs to an agent's MCP
client. Nothing here mutates the store; edits go through the CLI or
SkillService directly.

Tools:
    skvault.validate    base64 archive -> manifest summary or error
    skvault.history     paged version list for a skill
    skvault.version     one stored snapshot
    skvault.diff        path-aligned diff of two versions
    skvault.export_md   current SKILL.md text
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import json
import logging
from typing import Any, Optional

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from .config import VaultConfig, load_config
from .errors import InvalidArchiveError, VaultError
from .history import diff_versions, get_history_entry, list_history
from .ingest import ingest_archive
from .service import SkillService

logger = logging.getLogger("skvault.server")

SKILL_ID_PROP = {"type": "string", "description": "Skill id"}


def _json(data: Any) -> list[TextContent]:
    return [TextContent(type="text", text=json.dumps(data, indent=2, default=str))]


class VaultServer:
    """MCP endpoint over a skill vault.

    Args:
        config: Vault configuration (loaded from SKVAULT_HOME if omitted).
        service: Pre-built service, mainly for tests.
    """

    def __init__(
        self,
        config: Optional[VaultConfig] = None,
        service: Optional[SkillService] = None,
    ) -> None:
        self.config = config or load_config()
        self.service = service or SkillService.from_config(self.config)
        self._mcp_server = Server("skvault")
        self._setup_handlers()

    def _setup_handlers(self) -> None:
        """Register MCP protocol handlers."""

        @self._mcp_server.list_tools()
        async def list_tools() -> list[Tool]:
            return self.tools()

        @self._mcp_server.call_tool()
        async def call_tool(name: str, arguments: dict) -> list[TextContent]:
            return await self._handle_tool_call(name, arguments)

    def tools(self) -> list[Tool]:
        return [
            Tool(
                name="skvault.validate",
                description="Validate a base64-encoded skill archive (zip or tar.gz)",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "archive": {"type": "string", "description": "Base64 archive bytes"},
                        "strict": {
                            "type": "boolean",
                            "description": "Reject non-standard directories (default: config)",
                        },
                    },
                    "required": ["archive"],
                },
            ),
            Tool(
                name="skvault.history",
                description="List a skill's stored versions, newest first",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "skill_id": SKILL_ID_PROP,
                        "page": {"type": "integer", "description": "Page number (default 1)"},
                        "page_size": {"type": "integer", "description": "Versions per page"},
                    },
                    "required": ["skill_id"],
                },
            ),
            Tool(
                name="skvault.version",
                description="Get one stored version: spec, files, editor, message",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "skill_id": SKILL_ID_PROP,
                        "version": {"type": "integer", "description": "Version number"},
                    },
                    "required": ["skill_id", "version"],
                },
            ),
            Tool(
                name="skvault.diff",
                description="Compare two versions of a skill file by file",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "skill_id": SKILL_ID_PROP,
                        "from": {"type": "integer", "description": "Older version"},
                        "to": {"type": "integer", "description": "Newer version"},
                    },
                    "required": ["skill_id", "from", "to"],
                },
            ),
            Tool(
                name="skvault.export_md",
                description="Render the skill's current SKILL.md",
                inputSchema={
                    "type": "object",
                    "properties": {"skill_id": SKILL_ID_PROP},
                    "required": ["skill_id"],
                },
            ),
        ]

    async def _handle_tool_call(self, name: str, arguments: dict) -> list[TextContent]:
        """Route a tool call to its handler.

        Vault errors come back as ``{"error": code, "details": ...}``.
        """
        handlers = {
            "skvault.validate": self._handle_validate,
            "skvault.history": self._handle_history,
            "skvault.version": self._handle_version,
            "skvault.diff": self._handle_diff,
            "skvault.export_md": self._handle_export_md,
        }
        handler = handlers.get(name)
        if handler is None:
            return _json({"error": "unknown_tool", "details": f"Unknown tool: {name}"})

        try:
            return _json(handler(arguments or {}))
        except VaultError as exc:
            logger.info("Tool '%s' rejected: %s", name, exc.message)
            return _json(exc.to_dict())
        except Exception as exc:
            logger.exception("Tool '%s' failed", name)
            return _json({"error": "internal", "details": f"{name} failed: {exc}"})

    def _handle_validate(self, arguments: dict) -> dict:
        try:
            data = base64.b64decode(arguments.get("archive", ""), validate=True)
        except (binascii.Error, ValueError) as exc:
            raise InvalidArchiveError("Archive is not valid base64") from exc

        package = ingest_archive(data, self.config, strict=arguments.get("strict"))
        return {
            "valid": True,
            "manifest": package.manifest.to_spec(),
            "root": package.root_dir,
            "files": [f.path for f in package.files],
            "warnings": package.warnings,
        }

    def _handle_history(self, arguments: dict) -> dict:
        page = list_history(
            self.service.store,
            arguments.get("skill_id", ""),
            arguments.get("page", 1),
            arguments.get("page_size"),
            self.config,
        )
        return page.model_dump(mode="json")

    def _handle_version(self, arguments: dict) -> dict:
        record = get_history_entry(
            self.service.store, arguments.get("skill_id", ""), arguments.get("version", "")
        )
        return record.model_dump(mode="json")

    def _handle_diff(self, arguments: dict) -> dict:
        result = diff_versions(
            self.service.store,
            arguments.get("skill_id", ""),
            arguments.get("from", ""),
            arguments.get("to", ""),
        )
        data = result.model_dump(mode="json")
        for entry, raw in zip(result.entries, data["entries"]):
            raw["status"] = entry.status
        return data

    def _handle_export_md(self, arguments: dict) -> dict:
        skill_id = arguments.get("skill_id", "")
        return {"skill_id": skill_id, "content": self.service.export_skill_md(skill_id)}

    async def run_stdio(self) -> None:
        """Run the vault as an MCP server on stdio."""
        async with stdio_server() as (read_stream, write_stream):
            await self._mcp_server.run(
                read_stream,
                write_stream,
                self._mcp_server.create_initialization_options(),
            )


def main() -> None:
    """Entry point for the SKVault MCP server."""
    logging.basicConfig(level=logging.WARNING, format="%(name)s: %(message)s")
    server = VaultServer()
    logger.warning("SKVault server started (db: %s)", server.config.database)
    asyncio.run(server.run_stdio())
