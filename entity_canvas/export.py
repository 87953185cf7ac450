"""
Structure export - JSON data dumps and SVG renderings.

`StructureExporter` implements the Exporter collaborator. It renders the
entities and connections it is given onto the surface described by a
`RenderSurface`; it never touches engine state.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Sequence
from xml.sax.saxutils import escape

from .analysis import summarize_structure
from .errors import ExportError
from .logging import get_logger
from .models import Connection, ConnectionKind, Entity, EntityKind

logger = get_logger("export")

FORMATS = ("json", "svg")

KIND_COLORS = {
    EntityKind.TRUST: "#7c3aed",
    EntityKind.LLC: "#2563eb",
    EntityKind.SCORP: "#059669",
    EntityKind.TAX_RETURN: "#dc2626",
}


@dataclass(frozen=True)
class RenderSurface:
    """What the exporter needs to know about the drawing surface."""
    width: float = 1200
    height: float = 800
    entity_width: float = 200
    entity_height: float = 150
    grid_size: int = 20
    show_grid: bool = False


class StructureExporter:
    """Exports a structure as JSON or SVG bytes."""

    def __init__(self, name: str = "Untitled Structure"):
        self.name = name

    async def export(
        self,
        entities: Sequence[Entity],
        connections: Sequence[Connection],
        surface: Optional[RenderSurface],
        fmt: str,
    ) -> bytes:
        fmt = fmt.lower()
        if fmt not in FORMATS:
            raise ExportError(f"Unsupported export format: {fmt}. Must be one of {FORMATS}")
        if not entities:
            raise ExportError("Add some entities to the structure before exporting")
        surface = surface or RenderSurface()
        if fmt == "json":
            data = self._to_json(entities, connections)
        else:
            data = self._to_svg(entities, connections, surface)
        logger.info("Exported %d entities as %s", len(entities), fmt)
        return data

    def _to_json(self, entities: Sequence[Entity], connections: Sequence[Connection]) -> bytes:
        payload = {
            "name": self.name,
            "entities": [e.to_json_dict() for e in entities],
            "connections": [c.to_json_dict() for c in connections],
            "exportDate": datetime.now(timezone.utc).isoformat(),
            "format": "json",
            "summary": summarize_structure(entities, connections, self.name).to_dict(),
        }
        return json.dumps(payload, indent=2).encode("utf-8")

    def _to_svg(
        self,
        entities: Sequence[Entity],
        connections: Sequence[Connection],
        surface: RenderSurface,
    ) -> bytes:
        w, h = surface.entity_width, surface.entity_height
        lines = [
            f'<svg xmlns="http://www.w3.org/2000/svg" width="{surface.width:g}" '
            f'height="{surface.height:g}" viewBox="0 0 {surface.width:g} {surface.height:g}">',
            f'<title>{escape(self.name)}</title>',
            '<rect width="100%" height="100%" fill="#ffffff"/>',
        ]

        if surface.show_grid and surface.grid_size > 0:
            g = surface.grid_size
            lines.append(
                f'<defs><pattern id="grid" width="{g}" height="{g}" patternUnits="userSpaceOnUse">'
                f'<path d="M {g} 0 L 0 0 0 {g}" fill="none" stroke="#e5e7eb" stroke-width="1"/>'
                '</pattern></defs>'
            )
            lines.append('<rect width="100%" height="100%" fill="url(#grid)"/>')

        by_id = {e.id: e for e in entities}
        for connection in connections:
            source = by_id.get(connection.source)
            target = by_id.get(connection.target)
            if source is None or target is None:
                continue
            x1, y1 = source.position.x + w / 2, source.position.y + h / 2
            x2, y2 = target.position.x + w / 2, target.position.y + h / 2
            dash = ' stroke-dasharray="6 4"' if connection.kind == ConnectionKind.INCOME else ""
            lines.append(
                f'<line x1="{x1:g}" y1="{y1:g}" x2="{x2:g}" y2="{y2:g}" '
                f'stroke="#374151" stroke-width="2"{dash}/>'
            )
            lines.append(
                f'<text x="{(x1 + x2) / 2:g}" y="{(y1 + y2) / 2 - 6:g}" font-size="12" '
                f'text-anchor="middle" fill="#374151">{escape(connection.label)}</text>'
            )

        for entity in entities:
            x, y = entity.position.x, entity.position.y
            color = KIND_COLORS.get(entity.kind, "#6b7280")
            lines.append(
                f'<g id="{escape(entity.id)}">'
                f'<rect x="{x:g}" y="{y:g}" width="{w:g}" height="{h:g}" rx="8" '
                f'fill="#ffffff" stroke="{color}" stroke-width="2"/>'
                f'<text x="{x + w / 2:g}" y="{y + h / 2 - 8:g}" font-size="14" font-weight="bold" '
                f'text-anchor="middle">{escape(entity.name)}</text>'
                f'<text x="{x + w / 2:g}" y="{y + h / 2 + 12:g}" font-size="12" '
                f'text-anchor="middle" fill="{color}">{escape(entity.kind.value)}</text>'
                '</g>'
            )

        lines.append("</svg>")
        return "\n".join(lines).encode("utf-8")
