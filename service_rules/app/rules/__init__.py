"""
Rules engine package.

Defines the rule model and evaluation engine used by the Rules Service.
Rules combine AND-ed conditions with ordered actions and run in priority
order against an immutable execution context.

Modules of interest:
- models: Data classes for rules, conditions, actions, context and results.
- validator: Structural checks applied before a rule is persisted.
- conditions: Operator semantics over context fields.
- actions: Price, availability, restriction and side-effect actions.
- engine: Fetch, order, evaluate and aggregate.
- samples: Starter rule set for new organizations.
"""
