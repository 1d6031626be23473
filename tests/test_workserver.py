import math
import threading
from unittest import mock

import pytest

from oslab.workserver import (
    ARG_MOD,
    NUM_FUNC_CALLS,
    StatMonitor,
    WorkQueue,
    WorkServer,
    WorkUnit,
    WorkUnitStats,
    fake_work,
    generate_fake_work,
    main,
)


def test_queue_is_fifo():
    queue = WorkQueue(3)
    units = [WorkUnit(i, print, i) for i in range(3)]
    for unit in units:
        queue.put(unit)
    assert len(queue) == 3
    assert [queue.get().id for _ in range(3)] == [0, 1, 2]
    assert len(queue) == 0


def test_queue_rejects_non_positive_size():
    with pytest.raises(ValueError):
        WorkQueue(0)


def test_queue_put_blocks_when_full():
    queue = WorkQueue(2)
    queue.put(WorkUnit(0, print))
    queue.put(WorkUnit(1, print))
    done = threading.Event()

    def producer():
        queue.put(WorkUnit(2, print))
        done.set()

    thread = threading.Thread(target=producer)
    thread.start()
    assert not done.wait(0.2)
    assert len(queue) == 2
    assert queue.get().id == 0
    assert done.wait(2)
    thread.join()
    assert [queue.get().id, queue.get().id] == [1, 2]


def test_queue_get_blocks_until_put():
    queue = WorkQueue(1)
    got = []
    thread = threading.Thread(target=lambda: got.append(queue.get()))
    thread.start()
    thread.join(0.2)
    assert thread.is_alive()
    assert len(queue) == 0
    queue.put(WorkUnit(7, print, "ctx"))
    thread.join(2)
    assert len(got) == 1
    assert got[0].id == 7
    assert got[0].context == "ctx"
    assert len(queue) == 0


def test_stat_monitor_totals_and_report():
    monitor = StatMonitor()
    monitor.update(WorkUnitStats(submit_time=1.0, start_time=3.0, end_time=7.0))
    assert monitor.n_units == 1
    assert monitor.total_enqueued_seconds == pytest.approx(2.0)
    assert monitor.total_proc_seconds == pytest.approx(4.0)
    report = monitor.report()
    assert "Total units executed: 1" in report
    assert "Average unit wait in queue: 2.000000" in report


def test_stat_monitor_averages_over_units():
    monitor = StatMonitor()
    first = WorkUnitStats(submit_time=0.0, start_time=1.0, end_time=2.0)
    second = WorkUnitStats(submit_time=0.0, start_time=3.0, end_time=6.0)
    monitor.update(first)
    monitor.update(second)
    assert monitor.average_wait == pytest.approx(
        (first.enqueued_seconds + second.enqueued_seconds) / 2
    )
    assert monitor.average_processing == pytest.approx(
        (first.processing_seconds + second.processing_seconds) / 2
    )


def test_empty_monitor_reports_nan():
    monitor = StatMonitor()
    assert math.isnan(monitor.average_wait)
    assert "nan" in monitor.report()


def test_server_runs_every_unit():
    with WorkServer(num_workers=3, queue_size=2) as server:
        units = generate_fake_work(server, 10, 1)
    assert server.monitor.n_units == 10
    for unit in units:
        assert unit.stats.submit_time <= unit.stats.start_time <= unit.stats.end_time


def test_server_passes_contexts():
    seen = []
    lock = threading.Lock()

    def record(ctx):
        with lock:
            seen.append(ctx)

    with WorkServer(num_workers=4) as server:
        for i in range(12):
            server.submit(WorkUnit(i, record, i * 10))
    assert sorted(seen) == [i * 10 for i in range(12)]


def test_shutdown_is_idempotent_and_blocks_submit():
    server = WorkServer(num_workers=2)
    server.submit(WorkUnit(0, fake_work, 0))
    first = server.shutdown()
    assert server.shutdown() == first
    assert "Total units executed: 1" in first
    with pytest.raises(RuntimeError):
        server.submit(WorkUnit(1, fake_work, 0))


def test_submit_requires_function():
    with WorkServer(num_workers=1) as server:
        with pytest.raises(ValueError):
            server.submit(WorkUnit(0, None))


def test_failing_unit_is_recorded():
    def boom(ctx):
        raise RuntimeError(ctx)

    with WorkServer(num_workers=2) as server:
        server.submit(WorkUnit(5, boom, "bad"))
        server.submit(WorkUnit(6, fake_work, 0))
    assert [unit.id for unit, _ in server.failures] == [5]
    assert server.monitor.n_units == 2


def test_generate_fake_work_contexts_follow_modulus():
    with WorkServer(num_workers=2) as server, mock.patch("oslab.workserver.time.sleep"):
        units = generate_fake_work(server, 7, 3)
    assert [u.context for u in units] == [i % 3 for i in range(7)]
    assert [u.id for u in units] == list(range(7))


def test_generate_fake_work_rejects_bad_modulus():
    with WorkServer(num_workers=1) as server:
        with pytest.raises(ValueError):
            generate_fake_work(server, 3, 0)


def test_fake_work_sleeps_given_seconds():
    server = WorkServer(num_workers=1)
    unit = WorkUnit(0, fake_work, 0.05)
    server.submit(unit)
    report = server.shutdown()
    assert "Total units executed: 1" in report
    assert server.monitor.n_units == 1
    assert server.monitor.total_proc_seconds >= 0.04
    assert unit.stats.processing_seconds >= 0.04 or server.monitor.average_processing >= 0.04


def test_main_runs_whole_workload(capsys):
    with mock.patch("oslab.workserver.time.sleep"):
        assert main([]) == 0
    out = capsys.readouterr().out
    assert f"Total units executed: {NUM_FUNC_CALLS}" in out
    assert ARG_MOD > 0