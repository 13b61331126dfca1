from unittest.mock import MagicMock

from farmconnect.services.scheduler import init_scheduler, run_crop_sweep, shutdown_scheduler


def test_run_crop_sweep_swallows_errors():
    crops = MagicMock()
    crops.sweep_due_deletions.side_effect = RuntimeError("db down")
    assert run_crop_sweep(crops) == 0


def test_init_scheduler_catches_up_and_registers_job():
    crops = MagicMock()
    crops.sweep_due_deletions.return_value = 2
    scheduler = MagicMock()

    assert init_scheduler(crops, interval_minutes=5, scheduler=scheduler) is scheduler

    crops.sweep_due_deletions.assert_called_once_with()
    scheduler.add_job.assert_called_once()
    kwargs = scheduler.add_job.call_args.kwargs
    assert kwargs["trigger"] == "interval"
    assert kwargs["minutes"] == 5
    assert kwargs["id"] == "crop_deletion_sweep"
    assert kwargs["args"] == [crops]
    scheduler.start.assert_called_once_with()


def test_shutdown_only_when_running():
    scheduler = MagicMock(running=False)
    shutdown_scheduler(scheduler)
    scheduler.shutdown.assert_not_called()

    scheduler.running = True
    shutdown_scheduler(scheduler)
    scheduler.shutdown.assert_called_once_with(wait=False)
