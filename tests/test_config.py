import pathlib

import pytest

import soundwords.__main__
import soundwords.resolver


def test_missing_config_gives_defaults (tmp_path: pathlib.Path) -> None:

	assert soundwords.__main__.load_config(str(tmp_path / "missing.yaml")) == {}


def test_config_is_parsed (tmp_path: pathlib.Path) -> None:

	path = tmp_path / "config.yaml"
	path.write_text("sequencer:\n  initial_bpm: 96\nblocks:\n  - x = kick*4\n")

	config = soundwords.__main__.load_config(str(path))

	assert config["sequencer"]["initial_bpm"] == 96
	assert config["blocks"] == ["x = kick*4"]


def test_empty_config_file (tmp_path: pathlib.Path) -> None:

	path = tmp_path / "config.yaml"
	path.write_text("")

	assert soundwords.__main__.load_config(str(path)) == {}


def test_no_resolver_by_default () -> None:

	assert soundwords.__main__.make_resolver({}) is None


def test_directory_resolver (tmp_path: pathlib.Path) -> None:

	resolver = soundwords.__main__.make_resolver({"kind": "directory", "path": str(tmp_path)})

	assert isinstance(resolver, soundwords.resolver.DirectoryResolver)


def test_freesound_needs_a_token (monkeypatch: pytest.MonkeyPatch) -> None:

	monkeypatch.delenv("FREESOUND_API_TOKEN", raising=False)

	with pytest.raises(ValueError, match="token"):
		soundwords.__main__.make_resolver({"kind": "freesound"})

	resolver = soundwords.__main__.make_resolver({"kind": "freesound", "token": "abc"})

	assert isinstance(resolver, soundwords.resolver.FreesoundResolver)


def test_unknown_resolver_kind () -> None:

	with pytest.raises(ValueError, match="Unknown resolver"):
		soundwords.__main__.make_resolver({"kind": "tape"})
