"""
Scan Services

Organized by responsibility, in the order a scan flows through them:

1. admission/ - Idempotency gate
   - idempotency_gate.py: one scan per domain, mode and day unless forced

2. orchestration/ - Phase coordination
   - scan_pipeline.py: admit -> orchestrate -> aggregate -> rollup -> finish
   - phase_table.py: declarative phases, dependencies, modes and skip predicates
   - phase_scheduler.py: runs the phase table with maximal concurrency
   - collaborators.py: the external fetchers a scan depends on

3. agents/ - Agent run bookkeeping
   - agent_executor.py: pending -> running -> terminal AgentRun rows

4. fetchers/ - External data sources and page analysis
   - crawl_fetcher.py: homepage plus one-link-deep crawl, finding rules
   - performance_fetcher.py: PageSpeed Insights (mobile) lab metrics
   - rank_query_service.py: SerpApi organic results per keyword
   - competitive_analyzer.py: content, schema and freshness gaps vs top competitors
   - ai_readiness_analyzer.py: structured data, entity and answerability checks

5. keywords/ - Service detection and keyword derivation
   - service_detection.py: services, business name and location cues from homepage HTML
   - keyword_builder.py: capped keyword list, with domain fallback

6. ranking/ - Paced rank checking
   - rank_checker.py: position lookup per keyword under a deadline

7. scoring/ - Score aggregation
   - score_aggregator.py: findings, category scores, overall score and full report

8. rollup/ - Per-domain rollup
   - rollup_updater.py: atomic upsert of latest scores, scan count and trend

9. status/ - Read side for the API
   - scan_status.py: progress estimate and report lookup
"""
