"""Persistence service for the entity canvas: REST API, WebSocket sync and file storage."""
