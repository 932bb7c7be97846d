import typer

import cli.cli

if __name__ == "__main__":
    # cli.cli.app is the Typer instance with the chat, ask and server commands
    typer_app: typer.Typer = cli.cli.app
    typer_app()
