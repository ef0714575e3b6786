"""
Market data sync service.

Key components:
- Orchestrator: runs fetch -> transform -> freshness gate -> upsert per status
- Error recorder: fire-and-forget error bookkeeping on stored matches
- Health: per-status sync health classification
"""
