"""Tests for the command-line import job."""

from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from ankiport.jobs.import_apkg import main, run_import
from ankiport.models.card import ImportStats
from ankiport.models.failure import ImportErrorCode, KnownError
from ankiport.services.anki_import import ImportOutcome


@pytest.fixture
def apkg_file(tmp_path: Path, sample_apkg: bytes) -> Path:
    path = tmp_path / "spanish.apkg"
    path.write_bytes(sample_apkg)
    return path


class TestRunImport:
    async def test_imports_file(self, apkg_file: Path, session_factory, fake_storage) -> None:
        """The file is imported with the configured database and storage."""
        with (
            patch("ankiport.jobs.import_apkg.async_session_factory", session_factory),
            patch("ankiport.jobs.import_apkg.storage_from_settings", return_value=fake_storage),
        ):
            outcome = await run_import("user-1", apkg_file)

        assert outcome.imported == 2
        assert outcome.decks == 2
        assert "user-1/anki-media/diagram.png" in fake_storage.uploads


class TestMain:
    def test_success(self, apkg_file: Path) -> None:
        """Exit code 0 after a successful import."""
        outcome = ImportOutcome(import_id=1, imported=2, decks=2, stats=ImportStats())

        with patch(
            "ankiport.jobs.import_apkg.run_import",
            new_callable=AsyncMock,
            return_value=outcome,
        ) as mock_run:
            code = main(["--owner", "user-1", "--file", str(apkg_file)])

        assert code == 0
        mock_run.assert_awaited_once_with("user-1", apkg_file, False)

    def test_import_failure(self, apkg_file: Path) -> None:
        """Exit code 1 when the import fails."""
        error = KnownError(ImportErrorCode.ARCHIVE_INVALID, "bad archive")

        with patch(
            "ankiport.jobs.import_apkg.run_import",
            new_callable=AsyncMock,
            side_effect=error,
        ):
            code = main(["--owner", "user-1", "--file", str(apkg_file)])

        assert code == 1

    def test_missing_file(self, tmp_path: Path) -> None:
        """Exit code 2 when the file does not exist."""
        code = main(["--owner", "user-1", "--file", str(tmp_path / "missing.apkg")])

        assert code == 2

    def test_owner_required(self, apkg_file: Path) -> None:
        """The owner argument is mandatory."""
        with pytest.raises(SystemExit):
            main(["--file", str(apkg_file)])
