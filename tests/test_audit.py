"""
Test suite for the audit pipeline.

Tests:
1. Empty file list passes without running any stage
2. Fatal stages stop the run
3. Non-fatal stages are recorded and the run continues
4. Built-in integrity stage against saved backups
5. External auditor stage: missing command, timeout, exit codes, call counter
6. CLI exit codes
"""

import logging
import pytest
import subprocess
from pathlib import Path
from unittest.mock import MagicMock, patch

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from change_guardian import audit
from change_guardian.audit import AuditPipeline, AuditStage, save_backups
from change_guardian.core.config import build_config
from change_guardian.core.stats import StatsCounter


def completed(returncode=0, stdout="PASSED", stderr=""):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


@pytest.fixture
def config(tmp_path):
    return build_config({}, project_root=tmp_path)


@pytest.fixture
def pipeline(config):
    return AuditPipeline(config)


def recording_stage(name, result, calls, fatal=True):
    def check(files):
        calls.append(name)
        return result
    return AuditStage(name, check, fatal=fatal)


class TestOrchestration:

    def test_empty_file_list_runs_nothing(self, pipeline):
        calls = []
        pipeline.register(recording_stage('local', False, calls))
        assert pipeline.run([]) is True
        assert calls == []

    def test_all_stages_pass(self, pipeline):
        calls = []
        pipeline.register(recording_stage('a', True, calls))
        pipeline.register(recording_stage('b', True, calls))
        assert pipeline.run(['x.js'], ['a', 'b'])
        assert calls == ['a', 'b']

    def test_fatal_failure_stops_run(self, pipeline):
        calls = []
        pipeline.register(recording_stage('a', False, calls, fatal=True))
        pipeline.register(recording_stage('b', True, calls))

        run = pipeline.run_detailed(['x.js'], ['a', 'b'])
        assert not run.passed
        assert calls == ['a']
        assert run.failed_stages == ['a']

    def test_non_fatal_failure_continues_and_fails_run(self, pipeline):
        calls = []
        pipeline.register(recording_stage('a', False, calls, fatal=False))
        pipeline.register(recording_stage('b', True, calls))

        run = pipeline.run_detailed(['x.js'], ['a', 'b'])
        assert calls == ['a', 'b']
        assert not run.passed
        assert run.degraded

    def test_non_fatal_failure_as_warning(self, tmp_path):
        config = build_config({'audit': {'ai_failure_is_warning': True}}, project_root=tmp_path)
        pipeline = AuditPipeline(config)
        calls = []
        pipeline.register(recording_stage('a', False, calls, fatal=False))

        run = pipeline.run_detailed(['x.js'], ['a'])
        assert run.passed
        assert run.warnings

    def test_unknown_stage_is_skipped(self, pipeline):
        calls = []
        pipeline.register(recording_stage('a', True, calls))
        run = pipeline.run_detailed(['x.js'], ['nope', 'a'])
        assert run.passed
        assert run.skipped_stages == ['nope']
        assert calls == ['a']

    def test_crashing_stage_counts_as_failure(self, pipeline):
        def boom(files):
            raise ValueError("bad input")
        pipeline.register(AuditStage('boom', boom))

        run = pipeline.run_detailed(['x.js'], ['boom'])
        assert not run.passed
        assert run.outcomes[0].error == "bad input"

    def test_configured_stages_used_by_default(self, tmp_path):
        config = build_config({'audit': {'stages': ['only']}}, project_root=tmp_path)
        pipeline = AuditPipeline(config)
        calls = []
        pipeline.register(recording_stage('only', True, calls))
        assert pipeline.run(['x.js'])
        assert calls == ['only']


class TestIntegrityStage:

    def test_missing_backup_is_skipped(self, pipeline, tmp_path):
        (tmp_path / "app.js").write_text("function a() {}\n")
        assert pipeline.check_integrity(["app.js"])

    def test_backup_comparison_passes(self, pipeline, config, tmp_path):
        (tmp_path / "app.js").write_text("function a() {}\n")
        assert save_backups(["app.js"], config)
        (tmp_path / "app.js").write_text("function a() {}\nfunction b() {}\n")
        assert pipeline.check_integrity(["app.js"])

    def test_lost_symbol_fails(self, pipeline, config, tmp_path):
        (tmp_path / "lib").mkdir()
        (tmp_path / "lib" / "app.js").write_text("function a() {}\nclass Keep {}\n")
        save_backups(["lib/app.js"], config)
        assert (config.backups_dir / "lib" / "app.js").exists()

        (tmp_path / "lib" / "app.js").write_text("function a() {}\n")
        assert not pipeline.check_integrity(["lib/app.js"])

    def test_deleted_file_with_backup_fails(self, pipeline, config, tmp_path):
        (tmp_path / "app.js").write_text("x\n")
        save_backups(["app.js"], config)
        (tmp_path / "app.js").unlink()
        assert not pipeline.check_integrity(["app.js"])

    def test_file_outside_project_root_fails(self, tmp_path):
        root = tmp_path / "root"
        root.mkdir()
        config = build_config({}, project_root=root)
        pipeline = AuditPipeline(config)
        (root / "app.js").write_text("function a() {}\nfunction b() {}\n")
        save_backups(["app.js"], config)

        elsewhere = tmp_path / "elsewhere"
        elsewhere.mkdir()
        (elsewhere / "app.js").write_text("")

        assert not pipeline.check_integrity([str(elsewhere / "app.js")])

    def test_absolute_path_inside_project_root(self, pipeline, config, tmp_path):
        (tmp_path / "app.js").write_text("function a() {}\nclass Keep {}\n")
        save_backups(["app.js"], config)
        (tmp_path / "app.js").write_text("function a() {}\n")
        assert not pipeline.check_integrity([str(tmp_path / "app.js")])

    def test_save_backups_missing_source(self, config):
        assert not save_backups(["missing.js"], config)

    def test_save_backups_outside_project_root(self, config, tmp_path):
        outside = tmp_path.parent / f"{tmp_path.name}-outside.js"
        assert not save_backups([str(outside)], config)


class TestAiStage:

    def test_command_not_installed_passes(self, config):
        runner = MagicMock()
        stats = MagicMock()
        pipeline = AuditPipeline(config, stats=stats, runner=runner)

        with patch('change_guardian.audit.shutil.which', return_value=None):
            run = pipeline.run_detailed(['x.js'], ['ai'])

        assert run.passed
        assert [o.name for o in run.outcomes] == ['ai']
        runner.assert_not_called()
        stats.increment_external_calls.assert_not_called()

    def test_successful_call_counts_once(self, config):
        runner = MagicMock(return_value=completed())
        pipeline = AuditPipeline(config, runner=runner)

        with patch('change_guardian.audit.shutil.which', return_value='/usr/bin/gemini'):
            assert pipeline.run(['a.js', 'b.js'], ['ai'])

        assert pipeline.stats.get_stats()['ai_agent_calls'] == 1
        cmd = runner.call_args[0][0]
        assert cmd[:3] == ['gemini', '-y', '-p']
        assert 'a.js, b.js' in cmd[3]
        assert runner.call_args[1]['timeout'] == 30.0

    def test_registered_external_stage_is_counted(self, config):
        stats = MagicMock()
        pipeline = AuditPipeline(config, stats=stats)
        calls = []
        pipeline.register(recording_stage('local_only', True, calls))
        pipeline.register(AuditStage('review', lambda files: True, fatal=False, external=True))

        assert pipeline.run(['x.js'], ['local_only', 'review'])
        stats.increment_external_calls.assert_called_once_with()

    def test_unavailable_external_stage_is_skipped(self, config):
        stats = MagicMock()
        check = MagicMock(return_value=False)
        pipeline = AuditPipeline(config, stats=stats)
        pipeline.register(AuditStage('review', check, external=True, available=lambda: False))

        assert pipeline.run(['x.js'], ['review'])
        check.assert_not_called()
        stats.increment_external_calls.assert_not_called()

    def test_timeout_is_failure(self, config):
        runner = MagicMock(side_effect=subprocess.TimeoutExpired(cmd='gemini', timeout=30))
        pipeline = AuditPipeline(config, runner=runner)

        with patch('change_guardian.audit.shutil.which', return_value='/usr/bin/gemini'):
            assert not pipeline.check_ai(['x.js'])

    def test_nonzero_exit_is_failure(self, config):
        runner = MagicMock(return_value=completed(returncode=2, stdout="", stderr="quota"))
        pipeline = AuditPipeline(config, runner=runner)

        with patch('change_guardian.audit.shutil.which', return_value='/usr/bin/gemini'):
            assert not pipeline.check_ai(['x.js'])

    def test_ai_failure_does_not_stop_pipeline(self, config):
        runner = MagicMock(return_value=completed(returncode=1))
        pipeline = AuditPipeline(config, runner=runner)
        calls = []
        pipeline.register(recording_stage('after', True, calls))

        with patch('change_guardian.audit.shutil.which', return_value='/usr/bin/gemini'):
            run = pipeline.run_detailed(['x.js'], ['ai', 'after'])

        assert calls == ['after']
        assert not run.passed
        assert run.degraded

    def test_ai_fatal_config(self, tmp_path):
        config = build_config({'audit': {'ai_fatal': True}}, project_root=tmp_path)
        assert AuditPipeline(config).stages['ai'].fatal

    def test_full_default_pipeline(self, config, tmp_path):
        """local + integrity + ai over a conforming file."""
        (tmp_path / "app.js").write_text("const logger = require('./logger');\nfunction a() {}\n")
        runner = MagicMock(return_value=completed())
        pipeline = AuditPipeline(config, stats=StatsCounter(tmp_path / "stats.json"), runner=runner)

        with patch('change_guardian.audit.shutil.which', return_value='/usr/bin/gemini'):
            assert pipeline.run(["app.js"])
        runner.assert_called_once()


class TestMain:

    def run_main(self, monkeypatch, *argv):
        monkeypatch.setattr(sys, 'argv', ['change-guardian-audit', *argv])
        with pytest.raises(SystemExit) as exc_info:
            audit.main()
        return exc_info.value.code

    def test_no_files_exits_zero(self, monkeypatch):
        assert self.run_main(monkeypatch) == 0

    def test_failing_local_stage_exits_one(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        (tmp_path / "app.js").write_text("console.log('hello');\n")
        assert self.run_main(monkeypatch, '--quiet', '--stages', 'local', 'app.js') == 1

    def test_passing_run_exits_zero(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        (tmp_path / "app.js").write_text("const logger = require('./logger');\n")
        assert self.run_main(monkeypatch, '--stages', 'local,integrity', 'app.js') == 0

    def test_backup_mode(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        (tmp_path / "app.js").write_text("function a() {}\n")
        assert self.run_main(monkeypatch, '--backup', 'app.js') == 0
        assert (tmp_path / ".change-guardian" / "backups" / "app.js").exists()

    def test_verbose_and_quiet_conflict(self, monkeypatch):
        assert self.run_main(monkeypatch, '-v', '-q', 'a.js') == 1

    def test_config_warning_is_logged_once(self, monkeypatch, tmp_path, caplog):
        monkeypatch.chdir(tmp_path)
        (tmp_path / "change-guardian.yaml").write_text("integrity:\n  strict_symbols: maybe\n")
        (tmp_path / "app.js").write_text("const logger = require('./logger');\n")

        with caplog.at_level(logging.WARNING):
            assert self.run_main(monkeypatch, '--quiet', '--stages', 'local', 'app.js') == 0

        reported = [r for r in caplog.records if 'strict_symbols' in r.getMessage()]
        assert len(reported) == 1
