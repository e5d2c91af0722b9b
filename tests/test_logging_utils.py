import logging

import pytest

from salsa_installer.logging_utils import configure_logging, reset_logging


@pytest.fixture
def clean_root():
    root = logging.getLogger()
    level = root.level
    reset_logging()
    yield root
    reset_logging()
    root.setLevel(level)


def test_configure_logging_writes_file(tmp_path, clean_root):
    path = tmp_path / "logs" / "install.log"
    actual = configure_logging(log_path=str(path), also_console=False)
    assert actual == str(path)

    logging.getLogger("salsa_installer.test").debug("STDOUT detail")
    for h in clean_root.handlers:
        h.flush()
    text = path.read_text()
    assert "Logging initialized" in text
    assert "STDOUT detail" in text


def test_configure_logging_is_idempotent(tmp_path, clean_root):
    first = configure_logging(log_path=str(tmp_path / "a.log"), also_console=False)
    count = len(clean_root.handlers)
    second = configure_logging(log_path=str(tmp_path / "b.log"), also_console=False)
    assert first == second
    assert len(clean_root.handlers) == count
    assert not (tmp_path / "b.log").exists()


def test_unwritable_location_falls_back_to_cwd(tmp_path, clean_root, monkeypatch):
    monkeypatch.chdir(tmp_path)
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("")
    actual = configure_logging(log_path=str(blocker / "install.log"), also_console=False)
    assert actual == str(tmp_path / "salsa-installer.log")


def test_reset_removes_only_installed_handlers(tmp_path, clean_root):
    mine = logging.NullHandler()
    clean_root.addHandler(mine)
    try:
        configure_logging(log_path=str(tmp_path / "x.log"), also_console=True)
        reset_logging()
        assert mine in clean_root.handlers
        assert not any(isinstance(h, logging.FileHandler) and h.baseFilename.endswith("x.log") for h in clean_root.handlers)
    finally:
        clean_root.removeHandler(mine)
