"""Allow `python -m acp_traces`."""

from acp_traces.cli.main import cli

if __name__ == "__main__":
    cli(prog_name="acp-traces")
