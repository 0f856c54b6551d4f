"""Config 模块测试。

测试 FR_* 环境变量解析和配置管理。
"""

from __future__ import annotations

import os
from unittest import mock

import pytest

from fork_runner.config import Config, get_config, load_config, parse_duration, reload_config
from fork_runner.runtime import ForkFunctionRunner


def _clean_env(**overrides: str) -> dict[str, str]:
    env = {k: v for k, v in os.environ.items() if not k.startswith("FR_")}
    env.update(overrides)
    return env


class TestParseDuration:
    """测试时长解析。"""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("2.5", 2.5),
            ("10", 10.0),
            ("100ms", 0.1),
            ("10s", 10.0),
            ("1m", 60.0),
            ("1h", 3600.0),
            (" 5S ", 5.0),
            (".5", 0.5),
        ],
    )
    def test_valid(self, value: str, expected: float):
        assert parse_duration(value) == pytest.approx(expected)

    @pytest.mark.parametrize("value", [None, "", "  ", "abc", "-5", "10x", "1.2.3"])
    def test_invalid_disables(self, value: str | None):
        """无效值返回 0（禁用超时）。"""
        assert parse_duration(value) == 0.0


class TestLoadConfig:
    """测试环境变量加载。"""

    def test_defaults(self):
        with mock.patch.dict(os.environ, _clean_env(), clear=True):
            config = load_config()
        assert config.command == []
        assert config.process is None
        assert config.exec_timeout == 0.0
        assert config.inherit_env is True
        assert config.drain_grace == 1.0
        assert config.log_debug is False
        assert config.log_file is None

    def test_drain_grace_default_matches_runner(self):
        """默认等待时间与 runner 默认值一致。"""
        with mock.patch.dict(os.environ, _clean_env(), clear=True):
            config = load_config()
        assert config.drain_grace == ForkFunctionRunner().drain_grace
        assert Config().drain_grace == ForkFunctionRunner().drain_grace

    def test_process_split(self):
        """命令行使用 shlex 拆分。"""
        env = _clean_env(FR_PROCESS="python3 handler.py --name 'a b'")
        with mock.patch.dict(os.environ, env, clear=True):
            config = load_config()
        assert config.process == "python3"
        assert config.process_args == ["handler.py", "--name", "a b"]

    def test_unbalanced_quotes(self):
        with mock.patch.dict(os.environ, _clean_env(FR_PROCESS="echo 'oops"), clear=True):
            config = load_config()
        assert config.command == []

    def test_exec_timeout(self):
        with mock.patch.dict(os.environ, _clean_env(FR_EXEC_TIMEOUT="250ms"), clear=True):
            config = load_config()
        assert config.exec_timeout == pytest.approx(0.25)

    @pytest.mark.parametrize("value,expected", [("3", 3.0), ("50", 10.0), ("-1", 0.0), ("x", 1.0)])
    def test_drain_grace(self, value: str, expected: float):
        with mock.patch.dict(os.environ, _clean_env(FR_DRAIN_GRACE=value), clear=True):
            config = load_config()
        assert config.drain_grace == expected

    @pytest.mark.parametrize("value", ["false", "0", "no", "off"])
    def test_inherit_env_disabled(self, value: str):
        with mock.patch.dict(os.environ, _clean_env(FR_INHERIT_ENV=value), clear=True):
            config = load_config()
        assert config.inherit_env is False
        assert config.environment() == []

    def test_log_debug_sets_file(self):
        with mock.patch.dict(os.environ, _clean_env(FR_LOG_DEBUG="true"), clear=True):
            config = load_config()
        assert config.log_debug is True
        assert config.log_file is not None
        assert "fork-runner" in config.log_file


class TestConfigMethods:
    """测试 Config 类方法。"""

    def test_environment_inherits(self):
        with mock.patch.dict(os.environ, {"FR_TEST_MARKER": "42"}, clear=False):
            entries = Config().environment()
        assert "FR_TEST_MARKER=42" in entries

    def test_repr(self):
        config = Config(command=["python3", "a b.py"], exec_timeout=1.5)
        repr_str = repr(config)
        assert "command=python3 'a b.py'" in repr_str
        assert "exec_timeout=1.5" in repr_str

    def test_repr_unset(self):
        assert "command=unset" in repr(Config())


class TestGlobalConfig:
    """测试全局配置实例。"""

    def test_get_config_returns_same_instance(self):
        reload_config()
        assert get_config() is get_config()

    def test_reload_config_creates_new_instance(self):
        config1 = get_config()
        config2 = reload_config()
        assert config1 is not config2
