"""
Phase Scheduler

Runs the phase table for one scan. Every scheduled phase becomes an asyncio
task that waits for its dependencies to settle (never fail-fast), then either
skips or runs through the AgentExecutor. Independent phases therefore run
concurrently: crawl with performance, and AI readiness with serp/competitive.
"""
import asyncio
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from app.features.scan.models.scan_request import ScanMode
from app.features.scan.schemas.pipeline import (
    AgentContext,
    AgentOutcome,
    KeywordPlan,
    PhaseAOutput,
    PhaseOutputs,
    ScanContext,
)
from app.features.scan.services.agents.agent_executor import AgentExecutor
from app.features.scan.services.orchestration.collaborators import ScanCollaborators
from app.features.scan.services.orchestration.phase_table import (
    PHASE_TABLE,
    PhaseResult,
    PhaseRunContext,
    PhaseSpec,
    freeze_inputs,
    validate_phase_table,
)
from app.platform.config import Settings, settings as default_settings
from app.platform.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class PipelineResult:
    scan: ScanContext
    results: Dict[str, PhaseResult]
    scheduled_agents: Tuple[str, ...]

    def _state(self, name: str) -> Tuple[object, str, Optional[str]]:
        result = self.results.get(name)
        if result is None:
            return None, "not_scheduled", None
        if result.state == "completed":
            return result.value, "completed", None
        if result.state == "skipped":
            return None, "skipped", result.skip_reason
        return None, "failed", result.error

    def to_phase_outputs(self) -> PhaseOutputs:
        rank, rank_state, rank_note = self._state("serp")
        competitive, competitive_state, competitive_note = self._state("competitive")
        ai, ai_state, ai_note = self._state("ai_readiness")
        phase_a = self.results.get("phase_a")
        keywords = self.results.get("keywords")

        return PhaseOutputs(
            domain=self.scan.domain,
            mode=self.scan.mode,
            phase_a=phase_a.value if phase_a else PhaseAOutput(),
            keyword_plan=keywords.value if keywords else KeywordPlan(),
            rank=rank,
            rank_state=rank_state,
            rank_note=rank_note,
            competitive=competitive,
            competitive_state=competitive_state,
            competitive_note=competitive_note,
            ai_readiness=ai,
            ai_readiness_state=ai_state,
            ai_readiness_note=ai_note,
        )


def _from_outcome(name: str, outcome: AgentOutcome) -> PhaseResult:
    return PhaseResult(
        name=name,
        state=outcome.status.value,
        value=outcome.result,
        error=outcome.error,
        skip_reason=outcome.skip_reason,
    )


class PhaseScheduler:

    def __init__(
        self,
        executor: AgentExecutor,
        collaborators: ScanCollaborators,
        settings: Settings = default_settings,
        phases: Sequence[PhaseSpec] = PHASE_TABLE,
    ):
        self.executor = executor
        self.collaborators = collaborators
        self.settings = settings
        self.phases = validate_phase_table(phases)

    def schedule(self, mode: ScanMode) -> List[PhaseSpec]:
        return [p for p in self.phases if mode in p.modes]

    async def orchestrate(self, scan: ScanContext) -> PipelineResult:
        """
        Run every phase scheduled for `scan.mode` and return their settled results.

        Agent failures become failed PhaseResults. Anything else that raises
        (store errors, bugs in non-agent phases) is re-raised once every task
        has settled.
        """
        scheduled = self.schedule(scan.mode)
        tasks: Dict[str, asyncio.Task] = {}

        for phase in scheduled:
            deps = [tasks[d] for d in phase.depends_on if d in tasks]
            tasks[phase.name] = asyncio.create_task(
                self._run_phase(phase, scan, deps), name=f"{scan.scan_id}:{phase.name}"
            )

        settled = await asyncio.gather(*tasks.values(), return_exceptions=True)
        for outcome in settled:
            if isinstance(outcome, BaseException):
                raise outcome

        results = {result.name: result for result in settled}
        agents = tuple(p.agent_name for p in scheduled if p.agent_name)
        logger.info(
            f"[Scan] phases_settled scan_id={scan.scan_id} "
            + " ".join(f"{name}={result.state}" for name, result in results.items())
        )
        return PipelineResult(scan=scan, results=results, scheduled_agents=agents)

    async def _run_phase(
        self,
        phase: PhaseSpec,
        scan: ScanContext,
        deps: List[asyncio.Task],
    ) -> PhaseResult:
        if deps:
            await asyncio.wait(deps)
        # .result() re-raises a dependency's scheduler-level failure
        inputs = {task.result().name: task.result() for task in deps}
        ctx = PhaseRunContext(
            scan=scan,
            inputs=freeze_inputs(inputs),
            collaborators=self.collaborators,
            settings=self.settings,
        )

        skip_reason = phase.run_if(ctx) if phase.run_if else None

        if phase.agent_name is None:
            if skip_reason:
                return PhaseResult(name=phase.name, state="skipped", skip_reason=skip_reason)
            return PhaseResult(name=phase.name, state="completed", value=await phase.run(ctx))

        agent_ctx = AgentContext(scan_id=scan.scan_id, agent_name=phase.agent_name, mode=scan.mode)
        if skip_reason:
            outcome = await self.executor.skip(agent_ctx, skip_reason)
        else:
            outcome = await self.executor.run(agent_ctx, lambda: phase.run(ctx), phase.summarize)
        return _from_outcome(phase.name, outcome)
