from issues_tracker.cli import cli

cli()
