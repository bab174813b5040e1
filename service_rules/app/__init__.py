"""
Rules Service package for the property rules platform.

This package evaluates configurable business rules against a booking
context and produces adjusted prices, availability and restrictions.
It provides:

- app.main: API surface for evaluation, rule management and health.
- app.rules: Rule model, validation, condition evaluation and the engine.
- app.persistence: In-memory and PostgreSQL rule storage.
- app.cache: Redis-backed caching of per-scope rule snapshots.
- app.performance: Execution log and per-rule performance aggregates.
- app.pricing: Enhanced price quotes, comparisons and scenario testing.
- app.notifications: Dispatch of side-effecting rule actions.

Guidelines:
- A failure in one rule never aborts evaluation of the others.
- The store being down degrades to "no rules applied", never to an error.
- Keep evaluation deterministic and observable (metrics + logs).
"""
