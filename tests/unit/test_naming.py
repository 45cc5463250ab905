"""
Unit tests for archive naming (volback/backup/naming.py).
"""

import os
from datetime import datetime

import pytest
from freezegun import freeze_time

from volback.backup.naming import (
    Archive,
    InvalidVolumeName,
    archive_dir,
    archive_filename,
    archive_path,
    generate_timestamp,
    parse_archive_filename,
    sanitize_volume_name,
    split_archive_filename,
)


class TestSanitizeVolumeName:
    """Test volume name sanitization."""

    @pytest.mark.parametrize("volume_name,expected", [
        ("app_data", "app_data"),
        ("my-volume-1", "my-volume-1"),
        ("project/db", "project_db"),
        ("a\\b", "a_b"),
        ("name with spaces", "namewithspaces"),
        ("data.v2", "datav2"),
        ("weird$%^name", "weirdname"),
        ("0f3c2a9b7e", "0f3c2a9b7e"),
    ])
    def test_sanitize(self, volume_name, expected):
        assert sanitize_volume_name(volume_name) == expected

    def test_sanitize_is_deterministic(self):
        name = "stack/service.data:01"
        assert sanitize_volume_name(name) == sanitize_volume_name(name)

    @pytest.mark.parametrize("volume_name", ["/", "///", "", "$%^", "..", "/-_"])
    def test_unusable_names_raise(self, volume_name):
        with pytest.raises(InvalidVolumeName):
            sanitize_volume_name(volume_name)


class TestArchiveNames:
    """Test archive filename and path generation."""

    @freeze_time("2024-01-15 12:30:45")
    def test_generate_timestamp(self):
        assert generate_timestamp() == "20240115_123045"

    def test_generate_timestamp_from_datetime(self):
        assert generate_timestamp(datetime(2023, 2, 3, 4, 5, 6)) == "20230203_040506"

    def test_archive_filename(self):
        assert archive_filename("app_data", "20240115_123045") == "app_data_20240115_123045.tar.gz"

    def test_archive_dir_uses_sanitized_name(self):
        assert archive_dir("/b", "stack/db") == os.path.join("/b", "stack_db")

    def test_archive_path_keeps_original_name_in_filename(self):
        path = archive_path("/b", "app_data", "20240115_123045")
        assert path == os.path.join("/b", "app_data", "app_data_20240115_123045.tar.gz")

    def test_archive_dir_invalid_name(self):
        with pytest.raises(InvalidVolumeName):
            archive_dir("/b", "///")


class TestParseArchiveFilename:

    def test_parse_valid(self):
        assert parse_archive_filename("db", "db_20240115_123045.tar.gz") == "20240115_123045"

    @pytest.mark.parametrize("filename", [
        "db_20240115_123045.tar",
        "db_2024_123045.tar.gz",
        "other_20240115_123045.tar.gz",
        "db_extra_20240115_123045.tar.gz",
        ".volume_name",
    ])
    def test_parse_rejects_foreign_files(self, filename):
        assert parse_archive_filename("db", filename) is None

    def test_archive_properties(self):
        archive = Archive(volume_name="db", timestamp="20240115_123045", path="/b/db/db_20240115_123045.tar.gz")

        assert archive.filename == "db_20240115_123045.tar.gz"
        assert archive.created_at == datetime(2024, 1, 15, 12, 30, 45)


class TestSplitArchiveFilename:

    @pytest.mark.parametrize("filename,expected", [
        ("db_20240115_123045.tar.gz", ("db", "20240115_123045")),
        ("stack.db_20240115_123045.tar.gz", ("stack.db", "20240115_123045")),
        ("my_volume_1_20240115_123045.tar.gz", ("my_volume_1", "20240115_123045")),
    ])
    def test_split(self, filename, expected):
        assert split_archive_filename(filename) == expected

    @pytest.mark.parametrize("filename", [
        "_20240115_123045.tar.gz",
        "db_latest.tar.gz",
        "db_20240115_123045.tar",
        ".volume_name",
    ])
    def test_not_an_archive(self, filename):
        assert split_archive_filename(filename) is None
