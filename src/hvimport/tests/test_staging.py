"""Tests for bundle eligibility and staging."""

from pathlib import Path

import pytest

from conftest import make_bundle


# ═══════════════════════════════════════════════════════════════════
#  Bundle Eligibility
# ═══════════════════════════════════════════════════════════════════

class TestExportBundle:
    def test_eligible_bundle(self, export_root):
        from hvimport.pipeline.bundle import ExportBundle
        bundle = ExportBundle.from_path(make_bundle(export_root, "VM1"))
        assert bundle.name == "VM1"
        assert bundle.has_descriptor
        assert bundle.has_config_dir

    def test_name_from_trailing_slash(self, export_root):
        from hvimport.pipeline.bundle import ExportBundle
        path = make_bundle(export_root, "VM1")
        bundle = ExportBundle.from_path(str(path) + "/")
        assert bundle.name == "VM1"

    def test_missing_descriptor(self, export_root):
        from hvimport.errors import ErrorKind, ValidationError
        from hvimport.pipeline.bundle import ExportBundle
        path = make_bundle(export_root, "VM1")
        (path / "config.xml").unlink()
        with pytest.raises(ValidationError) as exc:
            ExportBundle.from_path(path)
        assert exc.value.kind == ErrorKind.VALIDATION_ERROR
        assert "config.xml" in exc.value.message

    def test_missing_config_dir(self, export_root):
        from hvimport.errors import ValidationError
        from hvimport.pipeline.bundle import ExportBundle
        path = export_root / "VM1"
        path.mkdir()
        (path / "config.xml").write_text("<configuration/>")
        with pytest.raises(ValidationError, match="Virtual Machines"):
            ExportBundle.from_path(path)

    def test_not_a_directory(self, tmp_path):
        from hvimport.errors import ValidationError
        from hvimport.pipeline.bundle import ExportBundle
        with pytest.raises(ValidationError, match="not a directory"):
            ExportBundle.from_path(tmp_path / "nope")

    def test_inspect_does_not_raise(self, tmp_path):
        from hvimport.pipeline.bundle import ExportBundle
        bundle = ExportBundle.inspect(tmp_path / "nope")
        assert not bundle.eligible


# ═══════════════════════════════════════════════════════════════════
#  Staging
# ═══════════════════════════════════════════════════════════════════

def _stager(data_root: Path, simulate: bool = False):
    from hvimport.hyperv.service import HostStorageDefaults
    from hvimport.pipeline.staging import Stager
    return Stager(HostStorageDefaults(vm_data_root=str(data_root), vhd_path="/vhd"), simulate=simulate)


class TestStaging:
    def test_destination_path(self):
        from hvimport.hyperv.service import HostStorageDefaults
        from hvimport.pipeline.bundle import ExportBundle
        from hvimport.pipeline.staging import destination_for
        bundle = ExportBundle(Path("/export/VM1"), "VM1", True, True)
        dest = destination_for(bundle, HostStorageDefaults(vm_data_root="/data", vhd_path="/vhd"))
        assert dest == Path("/data/Virtual Machines/VM1")

    def test_copies_whole_tree(self, export_root, data_root):
        from hvimport.pipeline.bundle import ExportBundle
        bundle = ExportBundle.from_path(make_bundle(export_root, "VM1"))
        result = _stager(data_root).stage(bundle)

        assert result.staged
        assert result.destination == data_root / "Virtual Machines" / "VM1"
        assert (result.destination / "config.xml").read_text() == "<configuration/>"
        assert (result.destination / "Virtual Machines" / "5A1B2C3D.exp").exists()
        # Source is left untouched
        assert (export_root / "VM1" / "config.xml").exists()

    def test_existing_destination_conflicts(self, export_root, data_root):
        from hvimport.errors import DestinationConflict, ErrorKind
        from hvimport.pipeline.bundle import ExportBundle
        bundle = ExportBundle.from_path(make_bundle(export_root, "VM2"))
        existing = data_root / "Virtual Machines" / "VM2"
        existing.mkdir(parents=True)
        (existing / "keep.txt").write_text("existing VM data")

        with pytest.raises(DestinationConflict) as exc:
            _stager(data_root).stage(bundle)

        assert exc.value.kind == ErrorKind.DESTINATION_CONFLICT
        assert sorted(p.name for p in existing.iterdir()) == ["keep.txt"]
        assert (existing / "keep.txt").read_text() == "existing VM data"

    def test_simulate_skips_copy(self, export_root, data_root):
        from hvimport.pipeline.bundle import ExportBundle
        bundle = ExportBundle.from_path(make_bundle(export_root, "VM1"))
        result = _stager(data_root, simulate=True).stage(bundle)

        assert result.simulated
        assert not result.staged
        assert not result.destination.exists()

    def test_simulate_still_detects_conflict(self, export_root, data_root):
        from hvimport.errors import DestinationConflict
        from hvimport.pipeline.bundle import ExportBundle
        bundle = ExportBundle.from_path(make_bundle(export_root, "VM1"))
        (data_root / "Virtual Machines" / "VM1").mkdir(parents=True)
        with pytest.raises(DestinationConflict):
            _stager(data_root, simulate=True).stage(bundle)

    def test_second_stage_of_same_bundle_conflicts(self, export_root, data_root):
        from hvimport.errors import DestinationConflict
        from hvimport.pipeline.bundle import ExportBundle
        bundle = ExportBundle.from_path(make_bundle(export_root, "VM1"))
        stager = _stager(data_root)
        stager.stage(bundle)
        with pytest.raises(DestinationConflict):
            stager.stage(bundle)
