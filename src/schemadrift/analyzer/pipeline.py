"""Six-stage audit pipeline.

Stages run in a fixed order and each consumes only earlier outputs:

    SchemaMapper -> UsageScanner -> UnusedElementsAnalyzer
                 -> DriftAnalyzer -> PerformanceAssessor

(the syntax-tree extractor underlies the first two). A run always completes:
unreadable or malformed files become warnings on the stage that hit them.
"""
import json
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from ..config import Config
from ..utils.logger import get_logger
from .corroboration import CorroborationSignals
from .discovery import discover_files
from .drift import DriftAnalyzer, DriftReport
from .elements import SchemaMapping
from .performance import PerformanceAssessor, PerformanceReport
from .schema_mapper import SchemaMapper
from .unused_elements import UnusedElementsAnalyzer, UnusedElementsReport
from .usage_scanner import UsageReport, UsageScanner

logger = get_logger(__name__)

STAGES = ('schema', 'usage', 'unused', 'drift', 'performance')

ProgressCallback = Callable[[str], None]


@dataclass
class PipelineResult:
    """Every stage's output for one run."""
    schema: SchemaMapping
    usage: UsageReport
    unused: UnusedElementsReport
    drift: DriftReport
    performance: PerformanceReport

    @property
    def warnings(self) -> List[str]:
        """All stage warnings, de-duplicated, in stage order."""
        combined = (
            self.schema.warnings + self.usage.warnings + self.unused.warnings
            + self.drift.warnings + self.performance.warnings
        )
        return list(dict.fromkeys(combined))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'schema': self.schema.to_dict(),
            'usage': self.usage.to_dict(),
            'unused': self.unused.to_dict(),
            'drift': self.drift.to_dict(),
            'performance': self.performance.to_dict(),
            'warnings': self.warnings,
        }

    def to_json(self, indent: Optional[int] = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, sort_keys=True)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PipelineResult':
        return cls(
            schema=SchemaMapping.from_dict(data['schema']),
            usage=UsageReport.from_dict(data['usage']),
            unused=UnusedElementsReport.from_dict(data['unused']),
            drift=DriftReport.from_dict(data['drift']),
            performance=PerformanceReport.from_dict(data['performance']),
        )

    @classmethod
    def from_json(cls, text: str) -> 'PipelineResult':
        return cls.from_dict(json.loads(text))


def run_pipeline(config: Config, progress: Optional[ProgressCallback] = None) -> PipelineResult:
    """Run every stage against the configured project.

    Args:
        config: Project root, globs and heuristics
        progress: Called with each stage name as it starts

    Returns:
        PipelineResult
    """
    def advance(stage: str):
        logger.debug("stage_started", stage=stage)
        if progress is not None:
            progress(stage)

    root = config.project_root
    schema_files = discover_files(root, config.schema_patterns)
    excluded = set(schema_files)
    source_files = [p for p in discover_files(root, config.source_patterns) if p not in excluded]
    logger.info("files_discovered", schema=len(schema_files), source=len(source_files))

    advance('schema')
    mapper = SchemaMapper.from_config(config)
    mapping = mapper.correlate_usage(mapper.extract_schema(schema_files), source_files)

    advance('usage')
    usage = UsageScanner.from_config(config).scan(mapping, source_files)

    advance('unused')
    signals = CorroborationSignals.collect(config)
    unused = UnusedElementsAnalyzer(signals).analyze(mapping, usage)

    advance('drift')
    drift = DriftAnalyzer(signals, where_threshold=config.where_threshold).analyze(mapping, usage, unused)

    advance('performance')
    performance = PerformanceAssessor(where_threshold=config.where_threshold).assess(
        mapping, usage, unused, drift
    )

    result = PipelineResult(mapping, usage, unused, drift, performance)
    logger.info("pipeline_complete", warnings=len(result.warnings))
    return result
