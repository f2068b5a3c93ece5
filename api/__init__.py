"""FastAPI backend for SheetPilot (dialogue SSE endpoint + health)."""
