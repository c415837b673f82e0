"""
Entry point for `python -m pdfscan`; same commands as the `pdfscan` script
(extract, process, upload, serve).
"""

from .cli import cli

if __name__ == "__main__":
    cli(prog_name="pdfscan")
