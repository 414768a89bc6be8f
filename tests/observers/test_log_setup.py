import logging

from bakerst.logging.log import init_logging


def test_init_logging_writes_run_file(tmp_path):
    logger, run_id, log_path = init_logging(base_dir=tmp_path, name="bakerst-test", console=False)
    logger.debug("hello from test")
    for h in logger.handlers:
        h.flush()

    assert log_path.parent == tmp_path
    assert run_id in log_path.name
    text = log_path.read_text()
    assert "hello from test" in text
    assert f"run_id={run_id}" in text
    assert not any(type(h) is logging.StreamHandler for h in logger.handlers)


def test_console_level_follows_verbose(tmp_path):
    logger, _, _ = init_logging(base_dir=tmp_path, name="bakerst-test-verbose", verbose=True)
    console = [h for h in logger.handlers if type(h) is logging.StreamHandler]
    assert console and console[0].level == logging.DEBUG
