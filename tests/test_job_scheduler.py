"""Tests for the periodic jobs: blocking Mongo work stays off the event loop"""
import asyncio
import threading

from intervention_workflow.scheduler.job_scheduler import JobScheduler


def record_thread(calls: list, result=0):
    def run(*args):
        calls.append((threading.get_ident(), args))
        return result
    return run


def test_event_replay_runs_in_a_worker_thread():
    jobs = JobScheduler()
    calls = []
    jobs.engine.replay_stale_events = record_thread(calls, result=2)

    asyncio.run(jobs._replay_events())

    [(thread_id, args)] = calls
    assert thread_id != threading.get_ident()
    assert len(args) == 1


def test_lock_cleanup_runs_in_a_worker_thread():
    jobs = JobScheduler()
    calls = []
    jobs.outbox_repo.cleanup_stale_locks = record_thread(calls)

    asyncio.run(jobs._cleanup_stale_locks())

    [(thread_id, _)] = calls
    assert thread_id != threading.get_ident()


def test_reminder_sweep_runs_in_a_worker_thread():
    jobs = JobScheduler()
    calls = []
    jobs.reminders.run_sweep = record_thread(calls)

    asyncio.run(jobs._sweep_reminders())

    [(thread_id, _)] = calls
    assert thread_id != threading.get_ident()


def test_job_failure_is_logged_not_raised():
    jobs = JobScheduler()

    def broken(*args):
        raise RuntimeError("mongo unavailable")

    jobs.engine.replay_stale_events = broken

    asyncio.run(jobs._replay_events())
