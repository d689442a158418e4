"""Command line entry point for the telemetry forwarder.

The Typer application is ``cli.app.app``; it is not re-exported here so that
``cli.app`` keeps naming the module.
"""
