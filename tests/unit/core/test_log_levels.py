"""Test log level filtering in the file sink."""

import pytest

from mergeloom.core.log import (
    LEVELS,
    ConsoleSink,
    FileSink,
    LogfireSink,
    OTLPSink,
    level_name,
    setup_logger,
)

ORDER = ["spew", "trace", "debug", "info", "warn", "error"]


def _emit_all(log_root, level):
    log_file = log_root / f"{level}.log"
    logger = setup_logger(
        log_root=log_root,
        session_name="test",
        console=ConsoleSink(enabled=False),
        otlp=OTLPSink(enabled=False),
        file=FileSink(enabled=True, level=level, path=str(log_file)),
        logfire=LogfireSink(enabled=False),
    )
    for name in ORDER:
        getattr(logger, name)(f"{name.upper()} message")
    logger.close()
    return log_file.read_text()


@pytest.mark.parametrize("level", ORDER)
def test_file_sink_threshold(tmp_path, level):
    """Messages at or above the sink level are written, the rest dropped."""
    content = _emit_all(tmp_path, level)

    threshold = ORDER.index(level)
    for index, name in enumerate(ORDER):
        marker = f"{name.upper()} message"
        if index >= threshold:
            assert marker in content
        else:
            assert marker not in content


def test_level_ordering():
    """spew < trace < debug < info < warn < error < fatal."""
    values = [LEVELS[name] for name in ORDER + ["fatal"]]
    assert values == sorted(values)
    assert len(set(values)) == len(values)

    assert LEVELS['spew'] == 1  # SEVERITY_NUMBER_TRACE
    assert LEVELS['trace'] == 3  # SEVERITY_NUMBER_TRACE3
    assert LEVELS['debug'] == 5
    assert LEVELS['info'] == 9


def test_level_names_round_trip():
    for name, number in LEVELS.items():
        assert level_name(number) == name
    # Between thresholds rounds down
    assert level_name(LEVELS['info'] + 1) == 'info'
