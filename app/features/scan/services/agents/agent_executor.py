"""
Agent Executor

Wraps one unit of async work with AgentRun bookkeeping. Work failures are
captured and returned as a tagged AgentOutcome; only store failures escape.
"""
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.features.scan.models.agent_run import (
    AgentRun,
    AgentRunStatus,
    TERMINAL_AGENT_STATUSES,
)
from app.features.scan.schemas.pipeline import AgentContext, AgentOutcome
from app.platform.logger import get_logger

logger = get_logger(__name__)

MAX_ERROR_LENGTH = 500

Work = Callable[[], Awaitable[Any]]
Summarizer = Callable[[Any], Optional[Dict[str, Any]]]


def truncate_error(message: str, limit: int = MAX_ERROR_LENGTH) -> str:
    return message if len(message) <= limit else message[:limit]


def _result_failed(result: Any) -> Optional[str]:
    """Fetchers that report failure in-band (e.g. CrawlResult.ok == False)."""
    if getattr(result, "ok", True) is False:
        return getattr(result, "error", None) or "Agent reported an unsuccessful result"
    return None


class AgentExecutor:
    """
    Each write uses its own short session: Phase A agents write concurrently
    and an AsyncSession must not be shared across tasks.
    """

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    async def run(
        self,
        context: AgentContext,
        work: Work,
        summarize: Optional[Summarizer] = None,
    ) -> AgentOutcome:
        """
        Run `work` under a pending -> running -> completed|failed AgentRun row.

        Args:
            context: scan id, agent name and mode of the run
            work: zero-argument coroutine function producing the agent result
            summarize: builds the persisted result_summary from the result

        Returns:
            AgentOutcome with status completed (result set) or failed (error set)
        """
        run_id = await self._insert(context, AgentRunStatus.pending)
        started_at = datetime.now(timezone.utc)
        await self._update(run_id, status=AgentRunStatus.running.value, started_at=started_at)

        started = time.monotonic()
        result: Any = None
        summary: Optional[Dict[str, Any]] = None
        error: Optional[str] = None
        try:
            result = await work()
            error = _result_failed(result)
            if error is None and summarize:
                summary = summarize(result)
        except Exception as e:
            error = str(e) or e.__class__.__name__
        duration_ms = int((time.monotonic() - started) * 1000)

        if error is not None:
            error = truncate_error(error)
            await self._finish(
                run_id,
                status=AgentRunStatus.failed.value,
                error_message=error,
                duration_ms=duration_ms,
            )
            logger.warning(
                f"[Agent] failed scan_id={context.scan_id} agent={context.agent_name} "
                f"duration_ms={duration_ms} error={error}"
            )
            return AgentOutcome(
                agent_name=context.agent_name,
                status=AgentRunStatus.failed,
                result=result,
                error=error,
                duration_ms=duration_ms,
            )

        await self._finish(
            run_id,
            status=AgentRunStatus.completed.value,
            result_summary=summary,
            duration_ms=duration_ms,
        )
        logger.info(
            f"[Agent] completed scan_id={context.scan_id} agent={context.agent_name} duration_ms={duration_ms}"
        )
        return AgentOutcome(
            agent_name=context.agent_name,
            status=AgentRunStatus.completed,
            result=result,
            duration_ms=duration_ms,
        )

    async def skip(self, context: AgentContext, reason: str) -> AgentOutcome:
        now = datetime.now(timezone.utc)
        async with self._session_factory() as session:
            session.add(
                AgentRun(
                    scan_id=context.scan_id,
                    agent_name=context.agent_name,
                    scan_mode=context.mode.value,
                    status=AgentRunStatus.skipped.value,
                    skip_reason=reason,
                    completed_at=now,
                    duration_ms=0,
                )
            )
            await session.commit()

        logger.info(f"[Agent] skipped scan_id={context.scan_id} agent={context.agent_name} reason={reason}")
        return AgentOutcome(
            agent_name=context.agent_name,
            status=AgentRunStatus.skipped,
            skip_reason=reason,
            duration_ms=0,
        )

    async def finalize_summary(self, scan_id: str) -> Dict[str, Any]:
        """Summarize every AgentRun row of a scan; non-terminal rows count as incomplete."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(AgentRun).where(AgentRun.scan_id == scan_id).order_by(AgentRun.id)
            )
            runs = result.scalars().all()

        counts = {status: 0 for status in TERMINAL_AGENT_STATUSES}
        incomplete = 0
        agents = []
        for run in runs:
            if run.status in counts:
                counts[run.status] += 1
            else:
                incomplete += 1
            agents.append({
                "agent_name": run.agent_name,
                "status": run.status,
                "duration_ms": run.duration_ms,
                "error_message": run.error_message,
                "skip_reason": run.skip_reason,
            })

        return {
            "total": len(runs),
            "completed": counts[AgentRunStatus.completed.value],
            "failed": counts[AgentRunStatus.failed.value],
            "skipped": counts[AgentRunStatus.skipped.value],
            "incomplete": incomplete,
            "agents": agents,
        }

    # ------------------------------------------------------------------
    # Row writes
    # ------------------------------------------------------------------

    async def _insert(self, context: AgentContext, status: AgentRunStatus) -> str:
        async with self._session_factory() as session:
            run = AgentRun(
                scan_id=context.scan_id,
                agent_name=context.agent_name,
                scan_mode=context.mode.value,
                status=status.value,
            )
            session.add(run)
            await session.commit()
            return run.id

    async def _update(self, run_id: str, **values) -> None:
        async with self._session_factory() as session:
            await session.execute(update(AgentRun).where(AgentRun.id == run_id).values(**values))
            await session.commit()

    async def _finish(self, run_id: str, **values) -> None:
        # Terminal rows are never rewritten
        values["completed_at"] = datetime.now(timezone.utc)
        async with self._session_factory() as session:
            await session.execute(
                update(AgentRun)
                .where(AgentRun.id == run_id, AgentRun.status.not_in(TERMINAL_AGENT_STATUSES))
                .values(**values)
            )
            await session.commit()
