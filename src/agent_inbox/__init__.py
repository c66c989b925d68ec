"""
agent_inbox: a local inbox for asynchronous agent tasks.

Components:
- tasks/: data model, SQLite store, lifecycle engine, retention sweeper, report helpers
- monitor/: background attention monitor (process probes + detectors)
- cli/: the `agent-inbox` command line
"""

__version__ = "0.1.0"
