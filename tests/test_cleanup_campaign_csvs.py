"""Retention sweep for stored campaign CSVs"""
import os
import time

from scripts.cleanup_campaign_csvs import cleanup_campaign_csvs


def _write(path, age_days):
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "w") as f:
        f.write("email\nana@example.com\n")
    stamp = time.time() - age_days * 86400
    os.utime(path, (stamp, stamp))
    return path


def test_removes_only_old_processed_and_failed_files(tmp_path):
    old_processed = _write(str(tmp_path / "processed" / "a.csv"), 40)
    old_failed = _write(str(tmp_path / "failed" / "b.csv"), 31)
    recent = _write(str(tmp_path / "processed" / "c.csv"), 2)
    pending = _write(str(tmp_path / "pending" / "org" / "prop" / "d.csv"), 90)

    assert cleanup_campaign_csvs(str(tmp_path), retention_days=30) == 2
    assert not os.path.exists(old_processed)
    assert not os.path.exists(old_failed)
    assert os.path.exists(recent)
    assert os.path.exists(pending)


def test_dry_run_keeps_files(tmp_path):
    old = _write(str(tmp_path / "processed" / "a.csv"), 40)

    assert cleanup_campaign_csvs(str(tmp_path), retention_days=30, dry_run=True) == 1
    assert os.path.exists(old)


def test_missing_upload_dir(tmp_path):
    assert cleanup_campaign_csvs(str(tmp_path / "nothing-here"), retention_days=30) == 0
