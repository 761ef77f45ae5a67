"""FastAPI dependencies shared by the routers"""

from fastapi import HTTPException, Request

from .queue import JobQueue


def get_job_queue(request: Request) -> JobQueue:
    """Job queue created in the app lifespan"""
    queue = getattr(request.app.state, "job_queue", None)
    if queue is None:
        raise HTTPException(status_code=503, detail="Job queue unavailable")
    return queue
