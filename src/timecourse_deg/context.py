"""
Analysis Context and Step Results
=================================

Immutable objects handed to every pipeline stage:
1. Thresholds - significance, display and filtering constants
2. AnalysisContext - cleaned dataset plus run configuration
3. StepResult - per-iteration outcome (success or skip with a reason)

Skips are returned as values so that one failing day/condition never
aborts the whole batch.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

if TYPE_CHECKING:
    from .preprocessing.data_loader import CleanDataset


class StepStatus(Enum):
    SUCCESS = "success"
    SKIPPED = "skipped"


class SkipReason(Enum):
    """Why an iteration produced no output."""
    INSUFFICIENT_SAMPLES = "insufficient_samples"
    MODEL_FAILURE = "model_failure"
    EMPTY_RESULT = "empty_result"


@dataclass(frozen=True)
class Thresholds:
    """Cut-offs shared by the volcano, DEG union and heatmap stages."""
    padj: float = 0.05
    log2fc: float = 1.0
    score_epsilon: float = 1e-10
    score_cap: float = 10.0
    min_count: int = 10
    min_count_samples: int = 2
    min_samples: int = 2

    @classmethod
    def from_config(cls, section: Optional[Dict[str, Any]]) -> "Thresholds":
        if not section:
            return cls()
        known = {k: v for k, v in section.items() if k in cls.__dataclass_fields__}
        unknown = set(section) - set(known)
        if unknown:
            raise ValueError(f"Unknown threshold keys: {sorted(unknown)}")
        return cls(**known)


@dataclass(frozen=True)
class AnalysisContext:
    """Everything a stage needs; no stage reads module-level state."""
    dataset: "CleanDataset"
    control: str
    days: Tuple[str, ...]
    conditions: Tuple[str, ...]
    output_dir: Path
    thresholds: Thresholds = field(default_factory=Thresholds)
    day_col: str = 'day'
    condition_col: str = 'condition'
    plot_format: str = 'png'
    cluster_genes: bool = False
    condition_labels: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self):
        if self.control in self.conditions:
            raise ValueError(
                f"Control level '{self.control}' cannot also be a treatment condition"
            )
        present = set(self.dataset.samples[self.condition_col])
        if self.control not in present:
            raise ValueError(
                f"Control level '{self.control}' not found in sample metadata "
                f"(levels: {sorted(present)})"
            )

    def label_for(self, condition: str) -> str:
        return self.condition_labels.get(condition, condition)


@dataclass(frozen=True)
class StepResult:
    """Outcome of one stage for one day and/or condition."""
    step: str
    status: StepStatus
    day: Optional[str] = None
    condition: Optional[str] = None
    value: Any = None
    reason: Optional[SkipReason] = None
    message: str = ""
    outputs: Tuple[Path, ...] = ()

    @classmethod
    def success(cls, step: str, value: Any = None, day: Optional[str] = None,
                condition: Optional[str] = None,
                outputs: Tuple[Path, ...] = ()) -> "StepResult":
        return cls(step=step, status=StepStatus.SUCCESS, day=day,
                   condition=condition, value=value, outputs=tuple(outputs))

    @classmethod
    def skipped(cls, step: str, reason: SkipReason, message: str,
                day: Optional[str] = None,
                condition: Optional[str] = None) -> "StepResult":
        return cls(step=step, status=StepStatus.SKIPPED, day=day,
                   condition=condition, reason=reason, message=message)

    @property
    def ok(self) -> bool:
        return self.status is StepStatus.SUCCESS

    def with_step(self, step: str) -> "StepResult":
        """Re-label a subset skip as belonging to the calling stage."""
        return StepResult(step=step, status=self.status, day=self.day,
                          condition=self.condition, value=self.value,
                          reason=self.reason, message=self.message,
                          outputs=self.outputs)

    def describe(self) -> str:
        scope = []
        if self.day is not None:
            scope.append(f"day {self.day}")
        if self.condition is not None:
            scope.append(f"condition {self.condition}")
        where = ", ".join(scope) or "run"
        if self.ok:
            return f"{self.step} [{where}]: ok"
        return f"{self.step} [{where}]: skipped ({self.reason.value}) - {self.message}"

    def to_record(self) -> Dict[str, Any]:
        return {
            'step': self.step,
            'status': self.status.value,
            'day': self.day,
            'condition': self.condition,
            'reason': self.reason.value if self.reason else None,
            'message': self.message,
            'outputs': [str(p) for p in self.outputs],
        }


def summarize(results: List[StepResult]) -> Dict[str, Any]:
    """Count successes and skips per step."""
    summary: Dict[str, Any] = {}
    for result in results:
        entry = summary.setdefault(result.step, {'success': 0, 'skipped': 0})
        entry[result.status.value] += 1
    return summary
