"""命令行入口：python -m chat_core [--once TEXT]"""

import argparse
import sys

from chat_core.config.settings import require_api_key, settings
from chat_core.domain.exceptions import ValidationError


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(prog="chat_core", description="Streaming chat client")
    parser.add_argument("--once", metavar="TEXT", help="run a single turn without the window and print the reply")
    args = parser.parse_args(argv)

    try:
        require_api_key(settings)
    except ValidationError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        print("Please set your OpenAI API key in the .env file:", file=sys.stderr)
        print("  OPENAI_API_KEY=your-api-key-here", file=sys.stderr)
        return 1

    if args.once is not None:
        from chat_core.api.service import run_single_turn

        print(run_single_turn(args.once))
        return 0

    from chat_core.gui.chat_window import run

    run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
