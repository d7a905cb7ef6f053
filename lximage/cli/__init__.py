"""lximage CLI — Typer-based command-line interface.

Provides the ``lximage`` command with subcommands for building an image
and checking that the host tools the build drives are installed.

All output uses Rich for formatted terminal display.
"""
