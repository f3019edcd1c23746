"""Entry point for `python -m fireflow.cli` invocation.

The help text will correctly show 'fire' as the command name.
"""


def main():
    """Run the CLI with proper program name."""
    from fireflow.cli.app import app

    app(prog_name="fire")


if __name__ == "__main__":
    main()
