#!/usr/bin/env python3
"""
Personal time tracking: record work per project and task, report totals.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

__version__ = "0.1.0"


def configure_logging(verbose: int = 0, quiet: bool = False) -> None:
    """
    Send log messages to stderr at a level chosen by the verbosity flags.

    Parameters
    ----------
    verbose : int, optional
        Number of ``-v`` flags; each lowers the threshold one level from
        WARNING (default: 0).
    quiet : bool, optional
        Disable logging entirely.
    """
    if quiet:
        level = logging.CRITICAL + 1
    else:
        level = max(logging.WARNING - 10 * verbose, logging.DEBUG)
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s",
        stream=sys.stderr,
        force=True,
    )


def build_app():
    """
    Build the Typer app lazily to keep fast-path imports light.

    Returns
    -------
    typer.Typer
        Configured Typer application for the tst CLI.
    """
    import typer

    from . import commands
    from .config import load_config

    app = typer.Typer(help="Track time spent on projects and tasks.")

    @app.callback()
    def main_callback(
        ctx: typer.Context,
        verbose: int = typer.Option(
            0,
            "--verbose",
            "-v",
            count=True,
            help="Increase logging verbosity (repeatable).",
        ),
        quiet: bool = typer.Option(
            False,
            "--quiet",
            "-q",
            help="Disable logging to stderr.",
        ),
        config_file: Optional[Path] = typer.Option(
            None,
            "--config",
            help="Config file (default: ~/.config/timesheettool/config.toml).",
        ),
    ):
        configure_logging(verbose=verbose, quiet=quiet)
        ctx.obj = load_config(config_file)

    def go_cmd(
        ctx: typer.Context,
        project: str = typer.Argument(..., help="Project to log under; created if new."),
        task: str = typer.Argument(..., help="Task description."),
        start: Optional[str] = typer.Option(
            None,
            "--start",
            "-s",
            help="Start time (hh:mm, 'yesterday hh:mm', or YYYY-MM-DD hh:mm). Default: now.",
        ),
        end: Optional[str] = typer.Option(
            None,
            "--end",
            "-e",
            help="End time. Default: leave the record open.",
        ),
        allow_overlap: bool = typer.Option(
            False,
            "--allow-overlap",
            help="Do not end the currently open record.",
        ),
    ):
        """
        Start a new record, ending the open one at its start time.
        """
        raise typer.Exit(
            code=commands.run_go(
                project,
                task,
                start=start,
                end=end,
                allow_overlap=allow_overlap,
                config=ctx.obj,
            )
        )

    app.command("go")(go_cmd)
    app.command("start", hidden=True)(go_cmd)
    app.command("record", hidden=True)(go_cmd)

    @app.command("stop")
    def stop_cmd(
        ctx: typer.Context,
        end: Optional[str] = typer.Option(
            None,
            "--end",
            "-e",
            help="End time. Default: now.",
        ),
    ):
        """
        Stop the open record.
        """
        raise typer.Exit(code=commands.run_stop(end=end, config=ctx.obj))

    def ls_cmd(
        ctx: typer.Context,
        since: str = typer.Option(
            "1 week",
            "--since",
            "-s",
            help="Window start, e.g. '1 week', '3 days', '2 months', YYYY-MM-DD.",
        ),
        until: str = typer.Option(
            "now",
            "--until",
            "-u",
            help="Window end ('now' includes today).",
        ),
        granularity: str = typer.Option(
            "auto",
            "--granularity",
            "-g",
            help="auto/all/daily/weekly/monthly.",
        ),
        rounding: Optional[str] = typer.Option(
            None,
            "--rounding",
            "-r",
            help="Rounding unit per project per day, e.g. 15m, 30m, 1h.",
        ),
    ):
        """
        List records or rounded totals per project.
        """
        raise typer.Exit(
            code=commands.run_ls(
                since=since,
                until=until,
                granularity=granularity,
                rounding=rounding,
                config=ctx.obj,
            )
        )

    app.command("ls")(ls_cmd)
    app.command("list", hidden=True)(ls_cmd)

    @app.command("edit")
    def edit_cmd(
        ctx: typer.Context,
        record_id: int = typer.Argument(..., help="Record id to edit."),
        start: Optional[str] = typer.Option(None, "--start", "-s", help="New start time."),
        end: Optional[str] = typer.Option(None, "--end", "-e", help="New end time."),
        project: Optional[str] = typer.Option(None, "--project", "-p", help="New project."),
        task: Optional[str] = typer.Option(None, "--task", "-t", help="New task."),
        reopen: bool = typer.Option(
            False,
            "--reopen",
            help="Clear the end time so the record is open again.",
        ),
    ):
        """
        Edit an existing record.
        """
        raise typer.Exit(
            code=commands.run_edit(
                record_id,
                start=start,
                end=end,
                project=project,
                task=task,
                reopen=reopen,
                config=ctx.obj,
            )
        )

    @app.command("overtime")
    def overtime_cmd(
        ctx: typer.Context,
        hours: float = typer.Option(8.0, "--hours", help="Hours in a working day."),
        since: str = typer.Option("1 week", "--since", "-s", help="Window start."),
    ):
        """
        Show hours worked per day and the running overtime balance.
        """
        raise typer.Exit(
            code=commands.run_overtime(hours=hours, since=since, config=ctx.obj)
        )

    return app


def main():
    """
    Entry point for the tst command.
    """
    app = build_app()
    app()


if __name__ == "__main__":
    main()
