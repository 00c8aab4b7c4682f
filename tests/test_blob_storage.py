"""
Tests for the local FIT file archive.
"""

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

import pytest

from fitflow.exceptions import StorageError
from fitflow.storage import LocalBlobStorage, generate_fit_file_path


@pytest.fixture
def archive(tmp_path):
    return LocalBlobStorage(tmp_path, delete_batch_size=2, delete_batch_pause=0.5)


class TestGenerateFitFilePath:

    def test_layout(self):
        path = generate_fit_file_path("user-123", datetime(2024, 1, 15, 10, 30), "Morning Run.fit", 1705320600000)
        assert path == "user-123/2024/01/15/1705320600000_morning_run.fit"

    def test_uses_utc_date(self):
        late_evening = datetime(2024, 1, 15, 23, 30, tzinfo=timezone.utc)
        path = generate_fit_file_path("u", late_evening, "a.fit", 1)
        assert path.startswith("u/2024/01/15/")

    def test_sanitizes_name(self):
        path = generate_fit_file_path("u", datetime(2024, 3, 2), "Ride (Évening)/2.FIT", 7)
        assert path == "u/2024/03/02/7_ride___vening__2.fit"


class TestUpload:

    def test_writes_file(self, archive, tmp_path):
        path = asyncio.run(archive.upload("u/2024/01/15/1_a.fit", b"data"))

        assert path == "u/2024/01/15/1_a.fit"
        assert (tmp_path / path).read_bytes() == b"data"

    def test_refuses_overwrite(self, archive, tmp_path):
        asyncio.run(archive.upload("u/a.fit", b"first"))

        with pytest.raises(StorageError, match="already exists"):
            asyncio.run(archive.upload("u/a.fit", b"second"))
        assert (tmp_path / "u/a.fit").read_bytes() == b"first"

    def test_rejects_paths_outside_root(self, archive):
        with pytest.raises(StorageError, match="escapes"):
            asyncio.run(archive.upload("../outside.fit", b"data"))


class TestListFiles:

    def _seed(self, archive):
        for path in ["u/2023/12/31/1_a.fit", "u/2024/01/15/2_b.fit", "u/2024/02/01/3_c.fit", "other/2024/01/01/4_d.fit"]:
            asyncio.run(archive.upload(path, b"x"))

    def test_newest_first(self, archive):
        self._seed(archive)

        files = asyncio.run(archive.list_files("u"))

        assert [f['name'] for f in files] == ["3_c.fit", "2_b.fit", "1_a.fit"]
        assert files[0]['path'] == "u/2024/02/01/3_c.fit"
        assert files[0]['size'] == 1

    def test_pagination(self, archive):
        self._seed(archive)

        page = asyncio.run(archive.list_files("u", limit=1, offset=1))
        assert [f['name'] for f in page] == ["2_b.fit"]

    def test_year_and_month_filter(self, archive):
        self._seed(archive)

        assert len(asyncio.run(archive.list_files("u", year=2024))) == 2
        assert [f['name'] for f in asyncio.run(archive.list_files("u", year=2024, month=1))] == ["2_b.fit"]

    def test_unknown_user(self, archive):
        assert asyncio.run(archive.list_files("nobody")) == []


class TestDeleteFiles:

    def test_batches_with_pause(self, archive, tmp_path):
        paths = [f"u/{i}.fit" for i in range(5)]
        for path in paths:
            asyncio.run(archive.upload(path, b"x"))

        with patch('fitflow.storage.blob.asyncio.sleep', new_callable=AsyncMock) as mock_sleep:
            result = asyncio.run(archive.delete_files(paths))

        assert result == {'deleted': paths, 'failed': []}
        assert not any((tmp_path / p).exists() for p in paths)
        # 5 files in batches of 2 pause twice
        assert mock_sleep.await_count == 2
        mock_sleep.assert_awaited_with(0.5)

    def test_missing_files_are_reported(self, archive):
        asyncio.run(archive.upload("u/a.fit", b"x"))

        result = asyncio.run(archive.delete_files(["u/a.fit", "u/missing.fit", "../escape.fit"]))

        assert result['deleted'] == ["u/a.fit"]
        assert [f['path'] for f in result['failed']] == ["u/missing.fit", "../escape.fit"]
