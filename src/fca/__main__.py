"""
python -m fca --app-state FILE <cmd>    — API operations
"""

import sys


def main() -> None:
    if len(sys.argv) < 2:
        print(
            "Usage: fca --app-state FILE "
            "<validate|check-cookie|refresh-dtsg|user-info|mark-delivered|health>",
            file=sys.stderr,
        )
        sys.exit(1)

    from .client import main as client_main

    client_main()


if __name__ == "__main__":
    main()
