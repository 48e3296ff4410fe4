import json
from pathlib import Path

import pytest

from debpack.config import PackagerConfig, load_config, with_overrides
from debpack.errors import ArchiveIOError, ValidationError


def test_defaults_resolve_against_project_dir(tmp_path):
    config = PackagerConfig(name="demo", version="1", project_dir=tmp_path)

    assert config.root == tmp_path / "root"
    assert config.debian_dir == tmp_path / "debian"
    assert config.requirements == tmp_path / "requirements.txt"
    assert config.work_dir == tmp_path / "build"
    assert config.output_path() == tmp_path / "build" / "demo_1_all.deb"
    assert config.cache_dir == tmp_path / "xdg-cache" / "debpack" / "envs"
    assert config.install_dir() == "opt/demo"


def test_relative_paths_are_project_relative(tmp_path):
    config = PackagerConfig(name="demo", version="1", project_dir=tmp_path, root="stage", output="dist/x.deb")

    assert config.root == tmp_path / "stage"
    assert config.output_path() == tmp_path / "dist" / "x.deb"


def test_layering_file_env_overrides(tmp_path):
    (tmp_path / "debpack.json").write_text(json.dumps({
        "name": "fromfile",
        "version": "1.0",
        "vendor": "filevendor",
        "install_prefix": "srv",
    }))
    env = {"DEBPACK_VERSION": "2.0", "DEBPACK_VENDOR": "envvendor", "SOURCE_DATE_EPOCH": "1700000000"}

    config = load_config(tmp_path, env=env, vendor="clivendor", name=None)

    assert config.name == "fromfile"
    assert config.version == "2.0"
    assert config.vendor == "clivendor"
    assert config.install_prefix == "srv"
    assert config.source_date_epoch == 1700000000
    assert config.project_dir == tmp_path


def test_unknown_keys_are_rejected(tmp_path):
    (tmp_path / "debpack.json").write_text(json.dumps({"name": "x", "colour": "blue"}))

    with pytest.raises(ValidationError, match="colour"):
        load_config(tmp_path, env={})


def test_invalid_json_is_a_validation_error(tmp_path):
    (tmp_path / "debpack.json").write_text("{not json")

    with pytest.raises(ValidationError):
        load_config(tmp_path, env={})


def test_explicit_config_file_must_exist(tmp_path):
    with pytest.raises(ValidationError, match="not found"):
        load_config(tmp_path, config_file=tmp_path / "other.json", env={})


def test_bad_source_date_epoch(tmp_path):
    with pytest.raises(ValidationError):
        load_config(tmp_path, env={"SOURCE_DATE_EPOCH": "yesterday"})


def test_depends_list_or_text(tmp_path):
    as_text = PackagerConfig(name="a", version="1", project_dir=tmp_path, depends="python3\n\ncurl\n")
    as_list = PackagerConfig(name="a", version="1", project_dir=tmp_path, depends=["python3", "curl"])

    assert as_text.resolved_depends() == as_list.resolved_depends() == ["python3", "curl"]


def test_depends_file_used_when_no_explicit_list(tmp_path):
    (tmp_path / "depends").write_text("\nlibssl3\n")
    config = PackagerConfig(name="a", version="1", project_dir=tmp_path)

    assert config.control_metadata().depends == ["libssl3"]


def test_validate(tmp_path):
    (tmp_path / "root").mkdir()
    PackagerConfig(name="ok", version="1", project_dir=tmp_path).validate()

    with pytest.raises(ValidationError, match="name"):
        PackagerConfig(version="1", project_dir=tmp_path).validate()
    with pytest.raises(ValidationError, match="Root"):
        PackagerConfig(name="ok", version="1", project_dir=tmp_path, root="missing").validate()
    with pytest.raises(ValidationError, match="Invalid package name"):
        PackagerConfig(name="Not_OK", version="1", project_dir=tmp_path).validate()


def test_with_overrides_ignores_none(tmp_path):
    config = PackagerConfig(name="a", version="1", project_dir=tmp_path)

    updated = with_overrides(config, version="2", vendor=None)

    assert (updated.version, updated.vendor) == ("2", "unknown")
    assert isinstance(updated.root, Path)


@pytest.mark.parametrize("epoch", ["yesterday", None, [1]])
def test_bad_source_date_epoch_in_config_file(tmp_path, epoch):
    (tmp_path / "debpack.json").write_text(json.dumps({"name": "a", "source_date_epoch": epoch}))

    with pytest.raises(ValidationError, match="source_date_epoch"):
        load_config(tmp_path, env={})


def test_undecodable_depends_file_is_a_validation_error(tmp_path):
    (tmp_path / "depends").write_bytes(b"libc6\n\xff\xfe\n")
    config = PackagerConfig(name="a", version="1", project_dir=tmp_path)

    with pytest.raises(ValidationError, match="not valid UTF-8"):
        config.resolved_depends()


def test_unreadable_depends_file_is_an_io_error(tmp_path, monkeypatch):
    (tmp_path / "depends").write_text("libc6\n")
    config = PackagerConfig(name="a", version="1", project_dir=tmp_path)

    def read_text(self, *args, **kwargs):
        raise PermissionError(13, "Permission denied", str(self))

    monkeypatch.setattr(Path, "read_text", read_text)

    with pytest.raises(ArchiveIOError, match="Cannot read depends file"):
        config.resolved_depends()
