"""
Deferred job queue on arq
Adds cancel-by-id on top of arq so a job id can be replaced with a new fire time
"""

import logging
from datetime import datetime
from typing import Any, Optional

from arq.connections import ArqRedis
from arq.constants import default_queue_name, job_key_prefix, result_key_prefix, retry_key_prefix
from arq.jobs import Job, JobStatus
from redis.exceptions import RedisError

from .exceptions import TransientError

logger = logging.getLogger(__name__)


class QueueUnavailableError(TransientError):
    """Redis could not be reached while enqueueing or cancelling"""

    pass


class JobQueue:
    def __init__(self, redis: ArqRedis, queue_name: str = default_queue_name):
        self.redis = redis
        self.queue_name = queue_name

    async def enqueue(
        self,
        function: str,
        *args: Any,
        job_id: Optional[str] = None,
        defer_until: Optional[datetime] = None,
    ) -> Optional[str]:
        """
        Enqueue function(*args). Returns the job id, or None when a job with
        the same id is still queued or its result is still kept.
        """
        try:
            job = await self.redis.enqueue_job(
                function,
                *args,
                _job_id=job_id,
                _defer_until=defer_until,
                _queue_name=self.queue_name,
            )
        except RedisError as e:
            logger.error(f"❌ Failed to enqueue {function}: {e}")
            raise QueueUnavailableError(f"Failed to enqueue {function}: {e}") from e

        if job is None:
            logger.info(f"ℹ️ Job {job_id} already exists, not enqueued again")
            return None
        return job.job_id

    async def cancel(self, job_id: str) -> bool:
        """
        Drop a pending job and any leftovers of an earlier run with the same id
        so the id can be enqueued again. Returns False when nothing was pending.
        """
        try:
            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.zrem(self.queue_name, job_id)
                pipe.delete(
                    job_key_prefix + job_id,
                    retry_key_prefix + job_id,
                    result_key_prefix + job_id,
                )
                removed, _deleted = await pipe.execute()
        except RedisError as e:
            logger.error(f"❌ Failed to cancel job {job_id}: {e}")
            raise QueueUnavailableError(f"Failed to cancel job {job_id}: {e}") from e

        if removed:
            logger.info(f"🗑️ Cancelled pending job {job_id}")
        return bool(removed)

    async def status(self, job_id: str) -> JobStatus:
        return await Job(job_id, self.redis, _queue_name=self.queue_name).status()
