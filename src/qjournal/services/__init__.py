"""QJournal services package.

Each service is independently testable and receives its collaborators by
dependency injection:

- journal: trade records, normalization and portfolio sizing
- pipeline: staged asynchronous processing of a trade collection
- analytics: metrics aggregation over processed trades
"""
