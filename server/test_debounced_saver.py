import os
import sys
import time

sys.path.append(os.path.dirname(__file__))

from debounced_saver import DebouncedSaver


def test_burst_of_commits_writes_once():
    writes = []
    saver = DebouncedSaver(lambda: writes.append(time.time()), interval_ms=50)

    # three quick moves in a row
    saver.debounce()
    time.sleep(0.01)
    saver.debounce()
    time.sleep(0.01)
    saver.debounce()

    time.sleep(0.15)
    assert len(writes) == 1

    saver.debounce()
    time.sleep(0.15)
    assert len(writes) == 2

    saver.flush()
    assert len(writes) == 3


def test_failed_write_is_logged_not_raised(caplog):
    def _disk_full():
        raise OSError("disk full")

    saver = DebouncedSaver(_disk_full, interval_ms=10)
    saver.flush()
    assert 'Debounced save failed' in caplog.text
