"""Property-based tests for configuration service."""

import json
import tempfile
from pathlib import Path

from hypothesis import given, strategies as st

from nesdb.models import AppConfig
from nesdb.services import ConfigurationService


path_segment = st.text(min_size=1, max_size=30, alphabet=st.characters(whitelist_categories=("Lu", "Ll", "Nd")))

valid_paths = st.builds(lambda x: Path.home() / "roms" / x, path_segment)
valid_output_dirs = st.builds(lambda x: Path("out") / x, path_segment)
valid_log_levels = st.sampled_from(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])
valid_extensions = st.builds(
    lambda x: "." + x,
    st.text(min_size=1, max_size=4, alphabet="abcdefghijklmnopqrstuvwxyz0123456789"),
)

valid_config_strategy = st.builds(
    lambda rom_directory, out_dir, log_level, rom_extension, include_archives: AppConfig(
        rom_directory=rom_directory,
        database_path=out_dir / "game_db.dat",
        listing_path=out_dir / "game_database.txt",
        log_level=log_level,
        rom_extension=rom_extension,
        include_archives=include_archives,
    ),
    valid_paths,
    valid_output_dirs,
    valid_log_levels,
    valid_extensions,
    st.booleans(),
)


def make_config(**overrides: object) -> AppConfig:
    values: dict[str, object] = {
        "rom_directory": Path.home() / "roms",
        "database_path": Path("game_db.dat"),
        "listing_path": Path("game_database.txt"),
        "log_level": "INFO",
        "rom_extension": ".nes",
        "include_archives": False,
    }
    values.update(overrides)
    return AppConfig(**values)  # type: ignore[arg-type]


@given(valid_config_strategy)
def test_configuration_round_trip(config: AppConfig) -> None:
    """For any valid configuration, saving and reloading preserves all values."""
    with tempfile.TemporaryDirectory() as temp_dir:
        config_path = Path(temp_dir) / "test_config.json"
        service = ConfigurationService(config_path)

        service.save_config(config)
        loaded_config = service.load_config()

        assert loaded_config == config


def test_configuration_round_trip_example() -> None:
    """Unit test example for configuration round-trip."""
    config = make_config(
        rom_directory=Path.home() / "roms" / "nes",
        database_path=Path("build") / "game_db.dat",
        include_archives=True,
        log_level="DEBUG",
    )

    with tempfile.TemporaryDirectory() as temp_dir:
        config_path = Path(temp_dir) / "nested" / "config.json"
        service = ConfigurationService(config_path)

        service.save_config(config)
        loaded_config = service.load_config()

        assert loaded_config.rom_directory == Path.home() / "roms" / "nes"
        assert loaded_config.database_path == Path("build") / "game_db.dat"
        assert loaded_config.listing_path == Path("game_database.txt")
        assert loaded_config.include_archives is True
        assert loaded_config.log_level == "DEBUG"


def create_invalid_config_strategy():
    """Create strategy for invalid but constructible configs."""
    return st.one_of(
        # Invalid log level
        st.builds(
            make_config,
            log_level=st.text(min_size=1).filter(lambda x: x not in ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]),
        ),
        # Extension without leading dot
        st.builds(make_config, rom_extension=st.text(max_size=5).filter(lambda x: not x.startswith("."))),
        # Bare dot or path separator in the extension
        st.builds(make_config, rom_extension=st.sampled_from([".", "./nes", ".a/b"])),
        # Same output for database and listing
        st.builds(lambda p: make_config(database_path=p, listing_path=p), valid_output_dirs),
        # Empty output paths
        st.builds(make_config, database_path=st.just(Path(""))),
        st.builds(make_config, listing_path=st.just(Path("."))),
        # Non-boolean archive flag
        st.builds(make_config, include_archives=st.sampled_from(["yes", 1, None])),
    )


@given(create_invalid_config_strategy())
def test_configuration_validation_rejects_invalid(config: AppConfig) -> None:
    """For any invalid configuration, validation fails with error messages."""
    service = ConfigurationService()
    result = service.validate_config(config)

    assert not result.is_valid
    assert len(result.errors) > 0
    assert all(isinstance(error, str) for error in result.errors)


@given(valid_config_strategy)
def test_configuration_validation_accepts_valid(config: AppConfig) -> None:
    """For any valid configuration, validation passes without errors."""
    service = ConfigurationService()
    result = service.validate_config(config)

    assert result.is_valid
    assert len(result.errors) == 0


def test_configuration_validation_examples() -> None:
    """Unit test examples for configuration validation."""
    service = ConfigurationService()

    result = service.validate_config(make_config())
    assert result.is_valid

    result = service.validate_config(make_config(listing_path=Path("game_db.dat")))
    assert not result.is_valid
    assert "database_path and listing_path must differ" in result.errors

    result = service.validate_config(make_config(rom_extension="nes"))
    assert not result.is_valid
    assert "rom_extension must start with '.'" in result.errors

    result = service.validate_config(make_config(log_level="VERBOSE"))
    assert not result.is_valid
    assert any("log_level" in error for error in result.errors)


def test_save_rejects_invalid_config(tmp_path: Path) -> None:
    """Invalid configurations are never written."""
    config_path = tmp_path / "config.json"
    service = ConfigurationService(config_path)

    try:
        service.save_config(make_config(log_level="LOUD"))
    except ValueError as e:
        assert "log_level" in str(e)
    else:
        raise AssertionError("save_config accepted an invalid configuration")
    assert not config_path.exists()


def test_missing_file_uses_defaults(tmp_path: Path) -> None:
    service = ConfigurationService(tmp_path / "missing.json")
    config = service.load_config()

    assert config == service.get_default_config()
    assert config.database_path == Path("game_db.dat")
    assert config.listing_path == Path("game_database.txt")
    assert config.rom_extension == ".nes"
    assert config.include_archives is False


def test_corrupt_file_uses_defaults(tmp_path: Path) -> None:
    config_path = tmp_path / "config.json"
    config_path.write_text("{not json", encoding="utf-8")

    config = ConfigurationService(config_path).load_config()
    assert config.log_level == "INFO"
    assert config.database_path == Path("game_db.dat")


def test_invalid_values_use_defaults(tmp_path: Path) -> None:
    config_path = tmp_path / "config.json"
    config_path.write_text(json.dumps({"log_level": "CHATTY"}), encoding="utf-8")

    config = ConfigurationService(config_path).load_config()
    assert config.log_level == "INFO"


def test_partial_file_fills_in_defaults(tmp_path: Path) -> None:
    config_path = tmp_path / "config.json"
    config_path.write_text(
        json.dumps({"rom_directory": "/srv/roms", "rom_extension": ".NES", "include_archives": "true"}),
        encoding="utf-8",
    )

    config = ConfigurationService(config_path).load_config()
    assert config.rom_directory == Path("/srv/roms")
    assert config.rom_extension == ".nes"
    assert config.include_archives is False
    assert config.database_path == Path("game_db.dat")
