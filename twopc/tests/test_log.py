"""
Tests for component logger configuration.
"""

import io
import logging

import pytest

from twopc.log import Log


@pytest.fixture
def component_log():
    component = Log(root_name="twopc-test")
    yield component
    component.reset()


class TestConfigure:
    def test_components_are_children_of_root(self, component_log):
        assert component_log.coordinator.name == "twopc-test.coordinator"
        assert component_log.network.parent is component_log.root

    def test_verbosity_selects_level(self, component_log):
        stream = io.StringIO()
        component_log.configure(4, stream=stream)

        component_log.runner.info("shown")
        component_log.runner.debug("hidden")

        output = stream.getvalue()
        assert "twopc-test.runner - INFO - shown" in output
        assert "hidden" not in output

    def test_reconfigure_replaces_handler(self, component_log):
        first, second = io.StringIO(), io.StringIO()
        component_log.configure(3, stream=first)
        component_log.configure(3, stream=second)

        component_log.cli.warning("once")

        assert first.getvalue() == ""
        assert second.getvalue().count("once") == 1
        assert len(component_log.root.handlers) == 1

    def test_zero_silences(self, component_log):
        component_log.configure(0)
        assert not component_log.coordinator.isEnabledFor(logging.CRITICAL)
        assert component_log.root.handlers == []

    def test_bad_verbosity_rejected(self, component_log):
        with pytest.raises(ValueError):
            component_log.configure(6)

    def test_reset_removes_handler_and_level(self, component_log):
        component_log.configure(5, stream=io.StringIO())
        component_log.reset()

        assert component_log.root.handlers == []
        assert component_log.root.level == logging.NOTSET
