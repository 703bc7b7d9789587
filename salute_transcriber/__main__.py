"""Package entry point for ``python -m salute_transcriber``.

HOW: Delegates to the CLI's main() function. ``--serve`` starts the HTTP API
instead.
"""

import sys

if __name__ == "__main__":
    if "--serve" in sys.argv:
        from salute_transcriber.server.app import run_api
        run_api()
    else:
        from salute_transcriber.cli import main
        main()
