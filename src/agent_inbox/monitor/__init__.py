"""
Attention monitor subsystem.

Components:
- probe.py: non-blocking process probes (psutil)
- registry.py: per-monitor watch state (MonitorRegistry)
- detectors.py: input-wait and stall heuristics
- attention_monitor.py: poll cycle + async loop driving the LifecycleEngine
"""
