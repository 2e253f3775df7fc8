# tests/test_dates.py
import re
from datetime import datetime

import pytest

from utils import dates


def test_normalize_iso8601_with_offset():
    assert dates.normalize_iso8601("2015-03-02T10:52:51-07:00") == "2015-03-02T17:52:51Z"


def test_normalize_iso8601_fractional_seconds_dropped():
    assert dates.normalize_iso8601("2015-03-02T17:52:51.123Z") == "2015-03-02T17:52:51Z"


def test_normalize_iso8601_none_and_garbage():
    assert dates.normalize_iso8601(None) is None
    with pytest.raises(ValueError):
        dates.normalize_iso8601("yesterday")


def test_now_utc_iso_format():
    assert re.match(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}Z$", dates.now_utc_iso())


def test_run_folder_name():
    assert dates.run_folder_name(datetime(2015, 3, 2, 10, 52, 51)) == "20150302-105251"
    assert re.match(r"^\d{8}-\d{6}$", dates.run_folder_name())
