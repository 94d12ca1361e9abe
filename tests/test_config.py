"""Config 模块测试。

测试 LOGPOPUP_* 环境变量解析和配置管理。
"""

from __future__ import annotations

import os
from unittest import mock

import pytest

from logpopup.config import (
    DEFAULT_FLUSH_INTERVAL,
    DEFAULT_GRACE_PERIOD,
    DEFAULT_MAX_LINES,
    Config,
    RunConfig,
    get_config,
    load_config,
    reload_config,
)


def _clean_env() -> dict[str, str]:
    return {k: v for k, v in os.environ.items() if not k.startswith("LOGPOPUP_")}


class TestDefaults:
    """测试默认值。"""

    def test_defaults(self):
        """未设置环境变量时使用默认值。"""
        with mock.patch.dict(os.environ, _clean_env(), clear=True):
            config = load_config()

        assert config.gui_enabled is True
        assert config.log_debug is False
        assert config.log_file is None
        assert config.flush_interval == DEFAULT_FLUSH_INTERVAL
        assert config.grace_period == DEFAULT_GRACE_PERIOD
        assert config.max_lines == DEFAULT_MAX_LINES
        assert config.trim_margin == 100

    def test_repr(self):
        """repr 包含关键字段。"""
        text = repr(Config())
        assert "gui_enabled=True" in text
        assert "grace_period=5.0" in text


class TestParseBool:
    """测试布尔值解析。"""

    @pytest.mark.parametrize("value", ["false", "0", "no", "off", "FALSE"])
    def test_gui_disabled(self, value):
        with mock.patch.dict(os.environ, {"LOGPOPUP_GUI": value}, clear=False):
            assert load_config().gui_enabled is False

    @pytest.mark.parametrize("value", ["true", "1", "yes", "on", "True"])
    def test_gui_enabled(self, value):
        with mock.patch.dict(os.environ, {"LOGPOPUP_GUI": value}, clear=False):
            assert load_config().gui_enabled is True


class TestNumericSettings:
    """测试数值配置解析与截断。"""

    def test_flush_interval_ms(self):
        with mock.patch.dict(os.environ, {"LOGPOPUP_FLUSH_INTERVAL_MS": "50"}, clear=False):
            assert load_config().flush_interval == pytest.approx(0.05)

    def test_flush_interval_clamped(self):
        with mock.patch.dict(os.environ, {"LOGPOPUP_FLUSH_INTERVAL_MS": "0"}, clear=False):
            assert load_config().flush_interval == pytest.approx(0.001)
        with mock.patch.dict(os.environ, {"LOGPOPUP_FLUSH_INTERVAL_MS": "99999"}, clear=False):
            assert load_config().flush_interval == pytest.approx(1.0)

    def test_flush_interval_invalid(self):
        with mock.patch.dict(os.environ, {"LOGPOPUP_FLUSH_INTERVAL_MS": "fast"}, clear=False):
            assert load_config().flush_interval == DEFAULT_FLUSH_INTERVAL

    def test_grace_period(self):
        with mock.patch.dict(os.environ, {"LOGPOPUP_GRACE_PERIOD": "0.5"}, clear=False):
            assert load_config().grace_period == 0.5

    def test_grace_period_clamped(self):
        with mock.patch.dict(os.environ, {"LOGPOPUP_GRACE_PERIOD": "-3"}, clear=False):
            assert load_config().grace_period == 0.0

    def test_grace_period_invalid(self):
        with mock.patch.dict(os.environ, {"LOGPOPUP_GRACE_PERIOD": "soon"}, clear=False):
            assert load_config().grace_period == DEFAULT_GRACE_PERIOD

    def test_max_lines_minimum(self):
        with mock.patch.dict(os.environ, {"LOGPOPUP_MAX_LINES": "10"}, clear=False):
            assert load_config().max_lines == 200

    def test_max_lines(self):
        with mock.patch.dict(os.environ, {"LOGPOPUP_MAX_LINES": "1000"}, clear=False):
            assert load_config().max_lines == 1000

    def test_timeouts(self):
        env = {"LOGPOPUP_DRAIN_TIMEOUT": "0.25", "LOGPOPUP_TERM_TIMEOUT": "3"}
        with mock.patch.dict(os.environ, env, clear=False):
            config = load_config()
        assert config.drain_timeout == 0.25
        assert config.term_timeout == 3.0


class TestLogDebug:
    """测试调试日志配置。"""

    def test_log_file_in_tempdir(self, tmp_path):
        env = {"LOGPOPUP_LOG_DEBUG": "true"}
        with mock.patch.dict(os.environ, env, clear=False), \
                mock.patch("tempfile.gettempdir", return_value=str(tmp_path)):
            config = load_config()

        assert config.log_debug is True
        assert config.log_file is not None
        assert config.log_file.startswith(str(tmp_path.resolve()))
        assert "logpopup_debug_" in config.log_file


class TestGlobalConfig:
    """测试全局配置缓存。"""

    def test_get_config_cached(self):
        reload_config()
        assert get_config() is get_config()

    def test_reload_config(self):
        with mock.patch.dict(os.environ, {"LOGPOPUP_GRACE_PERIOD": "7"}, clear=False):
            config = reload_config()
            assert config.grace_period == 7.0
            assert get_config() is config
        reload_config()


class TestRunConfig:
    """测试 RunConfig。"""

    def test_argv(self):
        run_config = RunConfig(command="make", args=("test", "-j4"))
        assert run_config.argv == ["make", "test", "-j4"]

    def test_frozen(self):
        run_config = RunConfig(command="make")
        with pytest.raises(Exception):
            run_config.command = "other"  # type: ignore[misc]
