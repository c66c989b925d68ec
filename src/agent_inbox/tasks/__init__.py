"""
Task subsystem.

Components:
- task_models.py: data structures (Task, TaskStatus)
- task_errors.py: error taxonomy (conflict / not found / invalid transition / storage)
- task_store.py: SQLite-backed storage shared by many short-lived processes
- task_lifecycle.py: transition rules + LifecycleEngine, the only writer of status
- task_retention.py: retention sweeper (one-shot and periodic)
- task_api.py: duplicate-tolerant report helpers and query helpers used by the CLI
"""
