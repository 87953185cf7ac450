#!/usr/bin/env python3
"""Entity canvas CLI - drives the canvas engine against the backend and prints JSON."""

import argparse
import asyncio
import json
import os
import sys
from pathlib import Path
from typing import Optional

import httpx

from .engine import CanvasEngine, OperationResult
from .errors import CanvasError
from .export import StructureExporter
from .http_store import DEFAULT_API_BASE, ApiClient, HttpConnectionStore, HttpEntityStore
from .logging import setup_logging
from .models import EntityKind, Point
from .notifications import RecordingNotifier
from .suggestions import RuleBasedAdvisor
from .validation import validation_summary

API_ENV = "ENTITY_CANVAS_API"


def _result_out(result: OperationResult) -> dict:
    data = {"success": result.ok}
    if result.entities:
        data["entities"] = [e.to_json_dict() for e in result.entities]
    if result.connection is not None:
        data["connection"] = result.connection.to_json_dict()
    if result.violations:
        data["violations"] = [v.to_dict() for v in result.violations]
    return data


# ── Commands ─────────────────────────────────────────────────────────────────

async def cmd_list(engine: CanvasEngine, args) -> dict:
    return {
        "success": True,
        "entities": [e.to_json_dict() for e in engine.entities],
        "connections": [c.to_json_dict() for c in engine.connections],
    }


async def cmd_add_entity(engine: CanvasEngine, args) -> dict:
    position = None
    if args.x is not None or args.y is not None:
        position = Point(x=args.x or 0, y=args.y or 0)
    properties = json.loads(args.properties) if args.properties else None
    result = await engine.add_entity(EntityKind(args.kind), position=position, name=args.name, properties=properties)
    return _result_out(result)


async def cmd_update_entity(engine: CanvasEngine, args) -> dict:
    properties = json.loads(args.properties) if args.properties else None
    result = await engine.update_entity(args.entity_id, name=args.name, properties=properties)
    return _result_out(result)


async def cmd_delete_entity(engine: CanvasEngine, args) -> dict:
    return _result_out(await engine.delete_entities([args.entity_id]))


async def cmd_connect(engine: CanvasEngine, args) -> dict:
    return _result_out(await engine.add_connection(args.source, args.target))


async def cmd_disconnect(engine: CanvasEngine, args) -> dict:
    return _result_out(await engine.delete_connection(args.connection_id))


async def cmd_suggest(engine: CanvasEngine, args) -> dict:
    suggestions = await engine.suggestions()
    return {"success": True, "suggestions": [s.to_json_dict() for s in suggestions]}


async def cmd_export(engine: CanvasEngine, args) -> dict:
    data = await engine.export(args.format)
    if args.output:
        path = Path(args.output)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return {"success": True, "file_path": str(path), "bytes": len(data)}
    return {"success": True, "format": args.format, "content": data.decode("utf-8")}


async def cmd_audit(engine: CanvasEngine, args) -> dict:
    issues = engine.audit()
    return {
        "success": True,
        "issues": [issue.to_dict() for issue in issues],
        "summary": validation_summary(issues),
    }


async def cmd_summarize(engine: CanvasEngine, args) -> dict:
    return {"success": True, "summary": engine.summary().to_dict()}


COMMANDS = {
    "list": cmd_list,
    "add-entity": cmd_add_entity,
    "update-entity": cmd_update_entity,
    "delete-entity": cmd_delete_entity,
    "connect": cmd_connect,
    "disconnect": cmd_disconnect,
    "suggest": cmd_suggest,
    "export": cmd_export,
    "audit": cmd_audit,
    "summarize": cmd_summarize,
}


async def _run(args, transport: Optional[httpx.AsyncBaseTransport] = None) -> dict:
    async with ApiClient(args.api, transport=transport) as client:
        engine = CanvasEngine(
            HttpEntityStore(client),
            HttpConnectionStore(client),
            advisor=RuleBasedAdvisor(),
            exporter=StructureExporter(),
            notifier=RecordingNotifier(),
        )
        try:
            await engine.load()
            return await COMMANDS[args.command](engine, args)
        except (CanvasError, ValueError) as e:
            return {"status": "error", "error": str(e)}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Entity canvas CLI")
    parser.add_argument("--api", default=os.environ.get(API_ENV, DEFAULT_API_BASE),
                        help=f"Backend API base URL (default: ${API_ENV} or {DEFAULT_API_BASE})")
    parser.add_argument("--log-level", default="WARNING")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("list")

    p = sub.add_parser("add-entity")
    p.add_argument("kind", choices=[k.value for k in EntityKind] + ["Form1040"])
    p.add_argument("--x", type=float, default=None)
    p.add_argument("--y", type=float, default=None)
    p.add_argument("--name", default=None)
    p.add_argument("--properties", default=None, help="JSON object")

    p = sub.add_parser("update-entity")
    p.add_argument("entity_id")
    p.add_argument("--name", default=None)
    p.add_argument("--properties", default=None, help="JSON object")

    p = sub.add_parser("delete-entity")
    p.add_argument("entity_id")

    p = sub.add_parser("connect")
    p.add_argument("source")
    p.add_argument("target")

    p = sub.add_parser("disconnect")
    p.add_argument("connection_id")

    sub.add_parser("suggest")

    p = sub.add_parser("export")
    p.add_argument("--format", default="json", choices=["json", "svg"])
    p.add_argument("--output", default=None)

    sub.add_parser("audit")
    sub.add_parser("summarize")
    return parser


def main(argv: Optional[list[str]] = None, transport: Optional[httpx.AsyncBaseTransport] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(level=args.log_level, stream=sys.stderr)
    result = asyncio.run(_run(args, transport))
    print(json.dumps(result))
    return 0 if result.get("success") else 1


if __name__ == "__main__":
    sys.exit(main())
