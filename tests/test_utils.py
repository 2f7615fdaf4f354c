import logging

import pytest

from hcapi.utils import columns, format_duration, format_list, log_error, plural

logger = logging.getLogger("tests.utils")


class TestPlural:
    @pytest.mark.parametrize(
        "count, noun, expected",
        [
            (1, "key", "1 key"),
            (3, "appliance", "3 appliances"),
            (0, "entry", "0 entries"),
            (2, "criterion", "2 criteria"),
            (2, "box", "2 boxes"),
            (2, "KEY", "2 KEYS"),
            (2, ("child", "children"), "2 children"),
            (1, ("child", "children"), "1 child"),
        ],
    )
    def test_plural(self, count, noun, expected):
        # Act & Assert
        assert plural(count, noun) == expected

    def test_without_count(self):
        # Act & Assert
        assert plural(5, "value", show_count=False) == "values"


class TestFormatting:
    @pytest.mark.parametrize(
        "items, expected",
        [
            ([], "n/a"),
            (["a"], "a"),
            (["a", "b"], "a and b"),
            (["a", "b", "c"], "a, b, and c"),
        ],
    )
    def test_format_list(self, items, expected):
        # Act & Assert
        assert format_list(items) == expected

    @pytest.mark.parametrize(
        "seconds, expected",
        [
            (0, "n/a"),
            (-5, "n/a"),
            (0.25, "250 milliseconds"),
            (61.5, "1 minute 1 second"),
            (3600, "1 hour"),
            (3900, "1 hour 5 minutes"),
            (90000, "1 day 1 hour"),
        ],
    )
    def test_format_duration(self, seconds, expected):
        # Act & Assert
        assert format_duration(seconds) == expected

    def test_columns(self):
        # Act
        lines = columns([["a:", "x"], ["long:", "yy"], ["mid:", "z"]])

        # Assert
        assert lines == ["a:     x", "long:  yy", "mid:   z"]

    def test_columns_empty(self):
        # Act & Assert
        assert columns([]) == []


class TestLogError:
    def test_error_and_causes_logged(self, caplog):
        # Arrange
        caplog.set_level(logging.ERROR)
        try:
            try:
                raise KeyError("inner")
            except KeyError as e:
                raise ValueError("outer") from e
        except ValueError as e:
            err = e

        # Act
        result = log_error(logger, "Operation", err)

        # Assert
        assert result is err
        messages = [r.getMessage() for r in caplog.records]
        assert messages[0] == "[Operation] outer"
        assert messages[1].endswith("└─ 'inner'")

    def test_same_error_logged_once(self, caplog):
        # Arrange
        caplog.set_level(logging.ERROR)
        err = RuntimeError("boom")

        # Act
        log_error(logger, "First", err)
        log_error(logger, "Second", err)

        # Assert
        assert [r.getMessage() for r in caplog.records] == ["[First] boom"]
