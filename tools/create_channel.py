from __future__ import annotations

"""CLI utility to provision a channel in the workspace store."""

import argparse


def main(argv: list[str] | None = None) -> None:
    """Create the named channel unless it already exists, then print its id."""
    parser = argparse.ArgumentParser(description="Create a workspace channel.")
    parser.add_argument("name", help="Channel name, unique within the workspace.")
    args = parser.parse_args(argv)

    from chatrag.app.dependencies import get_workspace_store

    channel, created = get_workspace_store().ensure_channel(args.name)
    state = "Created" if created else "Existing"
    print(f"{state} channel {channel.name}: {channel.id}")


if __name__ == "__main__":
    main()
