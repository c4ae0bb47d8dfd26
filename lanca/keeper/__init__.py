from .orchestrator import KeeperOrchestrator, KeeperReport
from .runner import KeeperRunner

__all__ = ["KeeperOrchestrator", "KeeperReport", "KeeperRunner"]
