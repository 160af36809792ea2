"""
In-place EBS encryption pipeline.

Stages, run in order by `handler.run_once`:
- locator: region resolution and attached-volume enumeration
- classifier: encrypted volumes are skipped, the rest become tasks
- cloner: snapshot + encrypted clone per task
- swapper: one stop, ordered detach/attach swaps, one start
- cleanup: best-effort deletion of intermediate snapshots
"""

__all__ = [
    "classifier",
    "cleanup",
    "cloner",
    "handler",
    "locator",
    "swapper",
]
