import pytest
import pytest_asyncio
from sqlalchemy import select

from app.features.scan.models.agent_run import AgentRun, AgentRunStatus
from app.features.scan.models.scan_request import ScanMode, ScanRequest
from app.features.scan.schemas.pipeline import AgentContext, CrawlResult
from app.features.scan.services.agents.agent_executor import MAX_ERROR_LENGTH, AgentExecutor, truncate_error


SCAN_ID = "scan_1_abcdef12"


@pytest_asyncio.fixture
async def executor(session_factory):
    async with session_factory() as session:
        session.add(
            ScanRequest(
                scan_id=SCAN_ID,
                target_url="https://example.com",
                normalized_url="https://example.com",
                domain="example.com",
                scan_mode="light",
                idempotency_key="example.com-light-2026-03-01",
                status="running",
            )
        )
        await session.commit()
    return AgentExecutor(session_factory)


def context(agent_name: str = "cwv") -> AgentContext:
    return AgentContext(scan_id=SCAN_ID, agent_name=agent_name, mode=ScanMode.light)


async def runs_for(session_factory):
    async with session_factory() as session:
        result = await session.execute(select(AgentRun).where(AgentRun.scan_id == SCAN_ID).order_by(AgentRun.id))
        return result.scalars().all()


def test_truncate_error():
    assert truncate_error("short") == "short"
    assert len(truncate_error("x" * 2000)) == MAX_ERROR_LENGTH


@pytest.mark.asyncio
async def test_successful_work_is_recorded_completed(executor, session_factory):
    async def work():
        return {"score": 90}

    outcome = await executor.run(context(), work, summarize=lambda r: {"score": r["score"]})

    assert outcome.status == AgentRunStatus.completed
    assert outcome.ok
    assert outcome.result == {"score": 90}

    runs = await runs_for(session_factory)
    assert len(runs) == 1
    run = runs[0]
    assert run.status == "completed"
    assert run.started_at is not None
    assert run.completed_at is not None
    assert run.duration_ms is not None and run.duration_ms >= 0
    assert run.result_summary == {"score": 90}
    assert run.error_message is None


@pytest.mark.asyncio
async def test_raising_work_is_recorded_failed_not_raised(executor, session_factory):
    async def work():
        raise RuntimeError("PageSpeed returned HTTP 500")

    outcome = await executor.run(context(), work)

    assert outcome.status == AgentRunStatus.failed
    assert not outcome.ok
    assert outcome.error == "PageSpeed returned HTTP 500"

    run = (await runs_for(session_factory))[0]
    assert run.status == "failed"
    assert run.error_message == "PageSpeed returned HTTP 500"
    assert run.completed_at is not None


@pytest.mark.asyncio
async def test_long_errors_are_truncated(executor, session_factory):
    async def work():
        raise ValueError("e" * 1200)

    outcome = await executor.run(context(), work)

    assert len(outcome.error) == MAX_ERROR_LENGTH
    run = (await runs_for(session_factory))[0]
    assert len(run.error_message) == MAX_ERROR_LENGTH


@pytest.mark.asyncio
async def test_unsuccessful_result_is_recorded_failed_but_kept(executor, session_factory):
    crawl = CrawlResult(ok=False, error="Homepage returned HTTP 503", pages_crawled=1)

    async def work():
        return crawl

    outcome = await executor.run(context("technical_crawl"), work)

    assert outcome.status == AgentRunStatus.failed
    assert outcome.result is crawl
    assert outcome.error == "Homepage returned HTTP 503"


@pytest.mark.asyncio
async def test_summarizer_error_is_recorded_failed_and_result_kept(executor, session_factory):
    async def work():
        return {"pages": 3}

    def summarize(result):
        return {"score": result["score"]}

    outcome = await executor.run(context("technical_crawl"), work, summarize=summarize)

    assert outcome.status == AgentRunStatus.failed
    assert outcome.result == {"pages": 3}
    assert outcome.error == "'score'"

    runs = await runs_for(session_factory)
    assert [r.status for r in runs] == ["failed"]
    assert runs[0].result_summary is None
    assert runs[0].completed_at is not None


@pytest.mark.asyncio
async def test_skip_writes_single_terminal_row(executor, session_factory):
    outcome = await executor.skip(context("serp"), "SERPAPI_API_KEY not configured")

    assert outcome.status == AgentRunStatus.skipped
    assert outcome.skip_reason == "SERPAPI_API_KEY not configured"

    runs = await runs_for(session_factory)
    assert len(runs) == 1
    assert runs[0].status == "skipped"
    assert runs[0].skip_reason == "SERPAPI_API_KEY not configured"
    assert runs[0].duration_ms == 0


@pytest.mark.asyncio
async def test_finalize_summary_counts_statuses(executor, session_factory):
    async def ok():
        return 1

    async def boom():
        raise RuntimeError("boom")

    await executor.run(context("technical_crawl"), ok)
    await executor.run(context("cwv"), boom)
    await executor.skip(context("serp"), "No keywords derived")

    summary = await executor.finalize_summary(SCAN_ID)

    assert summary["total"] == 3
    assert summary["completed"] == 1
    assert summary["failed"] == 1
    assert summary["skipped"] == 1
    assert summary["incomplete"] == 0
    agents = {a["agent_name"]: a for a in summary["agents"]}
    assert set(agents) == {"technical_crawl", "cwv", "serp"}
    assert agents["cwv"]["error_message"] == "boom"
    assert agents["serp"]["skip_reason"] == "No keywords derived"
