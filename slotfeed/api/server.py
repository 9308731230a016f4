"""Read-only HTTP status API over the checkpoint store."""

from __future__ import annotations

import argparse
import os
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, HTTPException, Query
from pydantic import BaseModel

from slotfeed import __version__
from slotfeed.checkpoint.base import CheckpointStore
from slotfeed.checkpoint.factory import build_checkpoint_store
from slotfeed.config import load_config
from slotfeed.constants import ENV_CONFIG_PATH
from slotfeed.cursor import RangeCursor
from slotfeed.utils.logging import setup_logging


class CursorOut(BaseModel):
    pipeline_id: str
    watermark: str
    excluded: list[str]


class CycleOut(BaseModel):
    pipeline_id: str
    status: str
    started_at: str
    ended_at: str
    slots_listed: int = 0
    slots_eligible: int = 0
    slots_consumed: list[str] = []
    records_read: int = 0
    bytes_read: int = 0
    watermark: str | None = None
    failure_kind: str | None = None
    error_message: str | None = None


class CycleListOut(BaseModel):
    pipeline_id: str
    items: list[CycleOut]
    limit: int


def _cursor_out(pipeline_id: str, cursor: RangeCursor) -> CursorOut:
    payload = cursor.to_dict()
    return CursorOut(
        pipeline_id=pipeline_id,
        watermark=payload["watermark"],
        excluded=payload["excluded"],
    )


def create_app(store: CheckpointStore) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        store.init_schema()
        yield
        store.close()

    app = FastAPI(title="slotfeed", version=__version__, lifespan=lifespan)

    @app.get("/health")
    def health():
        return {"status": "ok", "version": __version__}

    @app.get("/pipelines", response_model=list[CursorOut])
    def list_pipelines():
        return [
            _cursor_out(pipeline_id, cursor)
            for pipeline_id, cursor in store.list_cursors().items()
        ]

    @app.get("/pipelines/{pipeline_id}/cursor", response_model=CursorOut)
    def get_cursor(pipeline_id: str):
        cursor = store.load_cursor(pipeline_id)
        if cursor is None:
            raise HTTPException(status_code=404, detail=f"No checkpoint for {pipeline_id}")
        return _cursor_out(pipeline_id, cursor)

    @app.get("/pipelines/{pipeline_id}/cycles", response_model=CycleListOut)
    def list_cycles(pipeline_id: str, limit: int = Query(default=50, ge=1, le=500)):
        rows = store.list_cycle_audit(pipeline_id, limit=limit)
        return CycleListOut(
            pipeline_id=pipeline_id,
            items=[CycleOut.model_validate(row) for row in rows],
            limit=limit,
        )

    return app


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Serve the slotfeed status API")
    parser.add_argument("--config", default=os.environ.get(ENV_CONFIG_PATH, "config.yaml"))
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    args = parser.parse_args(argv)

    config = load_config(args.config)
    setup_logging(level=config.logging.level)
    app = create_app(build_checkpoint_store(config.checkpoint))
    uvicorn.run(app, host=args.host, port=args.port)


if __name__ == "__main__":
    main()
