"""HTTP service entrypoint for the background worker (health check + worker loop)."""

from __future__ import annotations

import asyncio
import contextlib
import os

from fastapi import FastAPI

from clientflow.worker import worker_loop

app = FastAPI()
_worker_task: asyncio.Task | None = None


@app.get("/health")
def health() -> dict:
    running = _worker_task is not None and not _worker_task.done()
    return {"status": "ok", "worker_running": running}


@app.on_event("startup")
async def _startup() -> None:
    global _worker_task
    _worker_task = asyncio.create_task(worker_loop())


@app.on_event("shutdown")
async def _shutdown() -> None:
    if _worker_task:
        _worker_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await _worker_task


def main() -> None:
    import uvicorn

    port = int(os.getenv("PORT", "8080"))
    host = os.getenv("HOST", "0.0.0.0")
    # nosec B104 - container platforms require binding to all interfaces.
    uvicorn.run("clientflow.worker_service:app", host=host, port=port)


if __name__ == "__main__":
    main()
