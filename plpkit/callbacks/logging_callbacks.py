"""
Hyperparameter search logging and tracking.

Design Decisions:

1. Structured records:
   - One record per evaluated configuration (parameters, performance, duration)
   - JSON export for later analysis

2. Human-readable console output:
   - One log line per configuration, a summary table at the end
"""

import json
import logging
import time
from dataclasses import dataclass, field, asdict
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class ConfigurationRecord:
    """Outcome of evaluating one configuration."""
    index: int
    params: Dict[str, Any]
    performance: Optional[float] = None
    is_final: bool = False
    duration_seconds: float = 0.0
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())

    def to_dict(self) -> dict:
        return asdict(self)


class SearchTracker:
    """
    Track configurations evaluated during a hyperparameter search.

    Example:
        >>> tracker = SearchTracker(model_name="RNN Torch")
        >>> tracker.start_configuration(0, {"hidden_size": 50})
        >>> tracker.end_configuration(0.71)
        >>> summary = tracker.get_summary()
    """

    def __init__(self, model_name: str = "model", output_dir: Optional[Path] = None):
        """
        Initialize search tracker.

        Args:
            model_name: Name used in log lines
            output_dir: Directory to save records (optional)
        """
        self.model_name = model_name
        self.output_dir = Path(output_dir) if output_dir else None
        if self.output_dir:
            self.output_dir.mkdir(parents=True, exist_ok=True)

        self.records: List[ConfigurationRecord] = []
        self.current: Optional[ConfigurationRecord] = None

        self._start_time: Optional[float] = None
        self.search_start_time: float = time.time()

    def start_configuration(self, index: int, params: Dict[str, Any], is_final: bool = False):
        """Mark the start of one configuration's evaluation."""
        self._start_time = time.time()
        self.current = ConfigurationRecord(index=index, params=dict(params), is_final=is_final)
        phase = "Final refit" if is_final else f"Configuration {index}"
        logger.info(f"{self.model_name} - {phase}: {params}")

    def end_configuration(self, performance: float):
        """Mark the end of the current evaluation."""
        if self.current is None:
            return

        self.current.performance = float(performance)
        self.current.duration_seconds = time.time() - (self._start_time or time.time())
        self.records.append(self.current)

        label = "in-sample AUC" if self.current.is_final else "AUC"
        logger.info(
            f"{self.model_name} - {label} {performance:.4f} "
            f"[{self.current.duration_seconds:.1f}s]"
        )
        self.current = None

    def get_summary(self) -> dict:
        """Get overall search summary."""
        evaluated = [r for r in self.records if not r.is_final]
        return {
            "model_name": self.model_name,
            "n_configurations": len(evaluated),
            "total_time_seconds": time.time() - self.search_start_time,
            "performances": [r.performance for r in evaluated],
        }

    def log_summary(self, best_index: Optional[int] = None):
        """Log one line per evaluated configuration."""
        logger.info("=" * 60)
        logger.info(f"{self.model_name} hyperparameter search")
        logger.info("=" * 60)
        for record in self.records:
            if record.is_final:
                continue
            marker = " *" if record.index == best_index else ""
            logger.info(f"  [{record.index}] {record.params}: {record.performance:.4f}{marker}")
        logger.info("=" * 60)

    def save(self, path: Optional[Path] = None) -> Path:
        """Save all records to JSON."""
        if path is None:
            path = self.output_dir / "search.json" if self.output_dir else Path("search.json")

        data = {
            "records": [r.to_dict() for r in self.records],
            "summary": self.get_summary(),
        }

        with open(path, "w") as f:
            json.dump(data, f, indent=2, default=str)

        logger.info(f"Saved search records to {path}")
        return path
