"""End-to-end tests for the audit pipeline."""
import shutil

from schemadrift.analyzer.pipeline import STAGES, PipelineResult, run_pipeline
from schemadrift.config import Config


class TestDeterminism:
    """Identical inputs produce identical output."""

    def test_repeat_runs(self, brewery_config):
        assert run_pipeline(brewery_config).to_json() == run_pipeline(brewery_config).to_json()

    def test_parallel_matches_sequential(self, brewery_root):
        sequential = run_pipeline(Config(brewery_root, read_pyproject=False, max_workers=1))
        parallel = run_pipeline(Config(brewery_root, read_pyproject=False, max_workers=4))
        assert parallel.to_json() == sequential.to_json()

    def test_json_round_trip(self, brewery_config):
        text = run_pipeline(brewery_config).to_json()
        assert PipelineResult.from_json(text).to_json() == text

    def test_copied_project_matches(self, brewery_root, tmp_path):
        """Output uses project-relative paths only."""
        copy = tmp_path / 'brewery'
        shutil.copytree(brewery_root, copy)
        original = run_pipeline(Config(brewery_root, read_pyproject=False)).to_json()
        assert run_pipeline(Config(copy, read_pyproject=False)).to_json() == original


class TestStages:
    """Stage ordering and progress reporting."""

    def test_progress_callback(self, brewery_config):
        seen = []
        run_pipeline(brewery_config, progress=seen.append)
        assert tuple(seen) == STAGES

    def test_stage_outputs(self, brewery_config):
        result = run_pipeline(brewery_config)
        assert result.schema.summary['tables'] == 3
        assert result.usage.files_scanned == 2
        assert len(result.unused.candidates) == 9
        assert result.performance.schema_health == result.drift.schema_health


class TestDegradedInputs:
    """A run always completes; problems become warnings."""

    def test_malformed_source_file(self, make_project):
        config = make_project({
            'packages/db/src/schema.ts': '''
                export const notes = pgTable("notes", {
                  body: text("body"),
                });
            ''',
            'apps/web/src/notes.ts': '''
                export const list = () => db.select({ body: notes.body }).from(notes);
            ''',
            'apps/web/src/broken.ts': 'export const = (;\n',
        })
        result = run_pipeline(config)
        skipped = [w for w in result.warnings if w.startswith('Skipped apps/web/src/broken.ts')]
        assert len(skipped) == 1
        assert result.usage.files_scanned == 1
        assert result.schema.columns['notes.body'].is_used

    def test_no_schema_files(self, make_project):
        config = make_project({'apps/web/src/app.ts': 'export const answer = 42;\n'})
        result = run_pipeline(config)
        assert result.schema.summary['tables'] == 0
        assert result.unused.candidates == []
        assert result.performance.opportunities == []
        assert 'No schema files matched the configured patterns' in result.warnings
        assert result.drift.index_utilization == 1.0

    def test_empty_project(self, tmp_path):
        result = run_pipeline(Config(tmp_path, read_pyproject=False))
        assert result.usage.patterns == []
        assert 0 <= result.drift.schema_health <= 100
