from __future__ import annotations

import sys

from produce_sync.bootstrap.exception_handler import handle_global_exception
from produce_sync.entrypoints.cli import EXIT_UNEXPECTED, main

try:
    raise SystemExit(main())
except Exception:  # noqa: BLE001
    # Failures before command dispatch (argument parsing aside) end up here.
    incident_id = handle_global_exception(*sys.exc_info())
    sys.stderr.write(f"Erro inesperado. Incidente: {incident_id}\n")
    raise SystemExit(EXIT_UNEXPECTED)
