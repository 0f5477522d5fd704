"""Tests for the persistence service."""

from dataclasses import dataclass
from pathlib import Path

import pytest
from hypothesis import HealthCheck, given, settings, strategies as st

from nesdb.models import CompiledDatabase, GameInfo, NesRegion
from nesdb.models.types import U8, U64
from nesdb.services.codec import SAVE_FILE_MAGIC, SAVE_VERSION
from nesdb.services.errors import (
    DecodingError,
    DeserializationError,
    InvalidHeaderError,
    InvalidPathError,
    PersistenceError,
    StorageIOError,
)
from nesdb.services.persistence import FILENAME_PLACEHOLDER, PersistenceService
from nesdb.services.storage import FileSystemService


@dataclass(frozen=True)
class SaveState:
    """Minimal console snapshot used as a save-state payload."""
    frame: U64
    slot: U8
    ram: bytes
    note: str | None = None


SAMPLE_ENTRIES: CompiledDatabase = [
    GameInfo(crc32=0x0C47946D, region=NesRegion.NTSC, mapper_num=210, submapper_num=1, title="Chibi"),
    GameInfo(crc32=0x808606F0, region=NesRegion.NTSC, mapper_num=210, submapper_num=1, title="Famista '91"),
    GameInfo(crc32=0xD323B806, region=NesRegion.PAL, mapper_num=210, submapper_num=2, title="Wagyan Land 3"),
]

save_states = st.builds(
    SaveState,
    frame=st.integers(min_value=0, max_value=2**64 - 1),
    slot=st.integers(min_value=0, max_value=255),
    ram=st.binary(max_size=2048),
    note=st.none() | st.text(max_size=30),
)


@pytest.fixture
def service(tmp_path: Path) -> PersistenceService:
    return PersistenceService(FileSystemService(base_path=tmp_path))


class TestStructuredPath:

    def test_save_and_load(self, service: PersistenceService, tmp_path: Path) -> None:
        service.save("db/game_db.dat", SAMPLE_ENTRIES, CompiledDatabase)
        assert (tmp_path / "db" / "game_db.dat").exists()
        assert service.load("db/game_db.dat", CompiledDatabase) == SAMPLE_ENTRIES

    def test_file_starts_with_header(self, service: PersistenceService, tmp_path: Path) -> None:
        service.save(tmp_path / "state.sav", SaveState(frame=1, slot=0, ram=b"\x00"))
        raw = (tmp_path / "state.sav").read_bytes()
        assert raw[:8] == SAVE_FILE_MAGIC
        assert raw[8:9] == SAVE_VERSION

    def test_save_out_matches_file(self, service: PersistenceService, tmp_path: Path) -> None:
        service.save("a.dat", SAMPLE_ENTRIES, CompiledDatabase)
        assert service.save_out(SAMPLE_ENTRIES, CompiledDatabase) == (tmp_path / "a.dat").read_bytes()

    def test_load_bytes(self, service: PersistenceService) -> None:
        blob = service.save_out(SAMPLE_ENTRIES, CompiledDatabase)
        assert service.load_bytes(blob, CompiledDatabase) == SAMPLE_ENTRIES

    def test_load_rejects_foreign_file(self, service: PersistenceService, tmp_path: Path) -> None:
        (tmp_path / "foreign.dat").write_bytes(b"NES\x1a" + bytes(32))
        with pytest.raises(InvalidHeaderError):
            service.load("foreign.dat", CompiledDatabase)

    def test_load_bytes_wrong_type(self, service: PersistenceService) -> None:
        blob = service.save_out("just a string")
        with pytest.raises(DeserializationError):
            service.load_bytes(blob, CompiledDatabase)

    def test_load_missing_file(self, service: PersistenceService) -> None:
        with pytest.raises(StorageIOError) as exc_info:
            service.load("missing.dat", CompiledDatabase)
        assert isinstance(exc_info.value.original_error, FileNotFoundError)
        assert "failed to open" in exc_info.value.message

    def test_load_directory(self, service: PersistenceService, tmp_path: Path) -> None:
        (tmp_path / "folder").mkdir()
        with pytest.raises(InvalidPathError):
            service.load("folder", CompiledDatabase)


class TestRawPath:

    def test_save_raw_and_load_raw(self, service: PersistenceService, tmp_path: Path) -> None:
        data = bytes(range(256))
        service.save_raw("raw.bin", data)
        assert (tmp_path / "raw.bin").read_bytes() == data
        assert service.load_raw("raw.bin") == data

    def test_raw_has_no_framing(self, service: PersistenceService) -> None:
        blob = service.save_out(SAMPLE_ENTRIES, CompiledDatabase)
        service.save_raw("copy.dat", blob)
        assert service.load("copy.dat", CompiledDatabase) == SAMPLE_ENTRIES

    def test_load_raw_missing(self, service: PersistenceService) -> None:
        with pytest.raises(StorageIOError):
            service.load_raw("nope.bin")


class TestHelpers:

    def test_exists_and_clear_dir(self, service: PersistenceService, tmp_path: Path) -> None:
        service.save_raw("cache/one.bin", b"1")
        service.save_raw("cache/nested/two.bin", b"2")
        assert service.exists("cache/one.bin")
        service.clear_dir("cache")
        assert not service.exists("cache")
        # Clearing again is a no-op
        service.clear_dir("cache")

    def test_clear_dir_on_file(self, service: PersistenceService) -> None:
        service.save_raw("file.bin", b"x")
        with pytest.raises(InvalidPathError):
            service.clear_dir("file.bin")

    def test_filename(self) -> None:
        assert PersistenceService.filename(Path("/roms/Game (USA).nes")) == "Game (USA).nes"
        assert PersistenceService.filename(Path("/")) == FILENAME_PLACEHOLDER


@settings(suppress_health_check=[HealthCheck.function_scoped_fixture])
@given(save_states)
def test_save_load_round_trip(service: PersistenceService, state: SaveState) -> None:
    service.save("round_trip.sav", state)
    assert service.load("round_trip.sav", SaveState) == state


@given(save_states)
def test_save_out_load_bytes_round_trip(state: SaveState) -> None:
    service = PersistenceService()
    assert service.load_bytes(service.save_out(state), SaveState) == state


@given(st.data())
def test_corrupted_payload_never_yields_a_different_value(data: st.DataObject) -> None:
    """Flipping a payload byte either fails loudly or leaves the value intact."""
    service = PersistenceService()
    blob = bytearray(service.save_out(SAMPLE_ENTRIES, CompiledDatabase))
    index = data.draw(st.integers(min_value=9, max_value=len(blob) - 1))
    mask = data.draw(st.integers(min_value=1, max_value=255))
    blob[index] ^= mask

    try:
        loaded = service.load_bytes(bytes(blob), CompiledDatabase)
    except (DecodingError, DeserializationError):
        return
    assert loaded == SAMPLE_ENTRIES


def test_persistence_errors_share_a_base() -> None:
    for error_type in (DecodingError, DeserializationError, InvalidHeaderError, InvalidPathError, StorageIOError):
        assert issubclass(error_type, PersistenceError)
