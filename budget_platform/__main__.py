from budget_platform.cli.runner import run_cli

run_cli()
