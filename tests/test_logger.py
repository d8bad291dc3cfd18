import re
import time

import pytest

from mixinkit import logger


@pytest.fixture(autouse=True)
def reset_logger():
    logger._state.level = 0
    logger._state.filter = None
    yield
    logger._state.level = 0
    logger._state.filter = None


def test_filter_cases():
    out = logger.filter_output("hello from mixin %d", time.time_ns())
    assert "mixin" in out

    logger.set_filter("bitcoin")
    assert "mixin" not in logger.filter_output("hello from mixin %d", time.time_ns())
    assert "mixin" not in logger.filter_output("Bitcoin from mixin %d", time.time_ns())
    assert "mixin" in logger.filter_output("bitcoin from mixin %d", time.time_ns())

    logger.set_filter("(?i)bitcoin")
    assert "mixin" not in logger.filter_output("hello from mixin %d", time.time_ns())
    assert "mixin" in logger.filter_output("Bitcoin from mixin %d", time.time_ns())
    assert "mixin" in logger.filter_output("bitcoin from mixin %d", time.time_ns())
    assert "mixin" not in logger.filter_output("ethereum from mixin %d", time.time_ns())

    logger.set_filter("(?i)bitcoin|Mixin")
    assert "mixin" in logger.filter_output("hello from mixin %d", time.time_ns())
    assert "mixin" in logger.filter_output("Bitcoin from mixin %d", time.time_ns())
    assert "mixin" in logger.filter_output("bitcoin from mixin %d", time.time_ns())
    assert "mixin" in logger.filter_output("ethereum from mixin %d", time.time_ns())
    assert "mixin" not in logger.filter_output("ethereum or bitcoin %d", time.time_ns())


def test_empty_pattern_keeps_filter():
    logger.set_filter("bitcoin")
    logger.set_filter("")
    assert logger.filter_output("hello from mixin") == ""


def test_invalid_pattern_raises():
    with pytest.raises(re.error):
        logger.set_filter("(unclosed")


def test_format_verbs():
    out = logger.filter_output("%s=%d %t %x", "n", 7, True, b"\x01\xff")
    assert out == "n=7 true 01ff"


def test_format_missing_and_extra_args():
    assert logger.filter_output("a %d") == "a %!d(MISSING)"
    assert logger.filter_output("a", 1).startswith("a%!(EXTRA")


def test_println_respects_level(capsys):
    logger.set_level(logger.ERROR)
    logger.println("quiet")
    assert capsys.readouterr().err == ""
    logger.set_level(logger.INFO)
    logger.println("loud", 1)
    assert capsys.readouterr().err.endswith("loud 1\n")


def test_printf_ignores_filter(capsys):
    logger.set_level(logger.INFO)
    logger.set_filter("nomatch")
    logger.printf("value %d", 5)
    assert capsys.readouterr().err.endswith("value 5\n")


def test_verbosef_levels_and_filter(capsys):
    logger.set_level(logger.INFO)
    logger.verbosef("hidden %d", 1)
    assert capsys.readouterr().err == ""
    logger.set_level(logger.VERBOSE)
    logger.verbosef("shown %d", 2)
    assert "shown 2" in capsys.readouterr().err
    logger.set_filter("keep")
    logger.verbosef("drop me")
    assert capsys.readouterr().err == ""


def test_debugf_requires_debug_level(capsys):
    logger.set_level(logger.VERBOSE)
    logger.debugf("deep")
    assert capsys.readouterr().err == ""
    logger.set_level(logger.DEBUG)
    logger.debugf("deep")
    assert "deep" in capsys.readouterr().err